# app/api/v1/endpoints/health.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.deps import AppContainer, get_container
from app.schemas.health_schemas import ComponentStatus, HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(container: AppContainer = Depends(get_container)):
    t = datetime.now(timezone.utc).isoformat()
    s = container.settings

    # Token store (Redis o memoria)
    if await container.token_store.ping():
        store_status = ComponentStatus(status="operational", detail="Token store OK")
    else:
        store_status = ComponentStatus(status="major_outage", detail="Token store unreachable")

    # FraudShieldBD: solo se valida que haya credencial, sin gastar cuota
    if container.risk_client.api_key:
        risk_status = ComponentStatus(status="operational", detail=s.FRAUDSHIELD_API_URL)
    else:
        risk_status = ComponentStatus(status="degraded_performance", detail="FRAUDSHIELD_API_KEY not set")

    webhook_status = ComponentStatus(
        status="operational" if s.SHOPIFY_API_SECRET else "degraded_performance",
        detail="HMAC secret configured" if s.SHOPIFY_API_SECRET else "SHOPIFY_API_SECRET not set",
    )

    components = {
        "token_store": store_status,
        "fraudshield": risk_status,
        "webhooks": webhook_status,
    }

    # Indicador global
    if store_status.status != "operational":
        indicator = "major_outage"
        desc = "Token store unavailable."
    elif any(c.status != "operational" for c in components.values()):
        indicator = "degraded_performance"
        desc = "Configuration incomplete."
    else:
        indicator = "operational"
        desc = "All systems functional."

    return HealthResponse(
        service=s.PROJECT_NAME,
        version=s.PROJECT_VERSION,
        time=t,
        indicator=indicator,
        description=desc,
        components=components,
        risk_cache_entries=len(container.cache),
    )
