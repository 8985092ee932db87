"""
FastAPI route handlers for prices, subscribers and alerts.
All handlers delegate to the PriceAlertService stored on app.state.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

import pytz
from fastapi import APIRouter, HTTPException, Query, Request

from powerprice.config import settings
from powerprice.exceptions import PriceAlertException, SubscriberNotFoundError, ValidationError
from powerprice.health_check import MAX_DATA_AGE, data_age
from powerprice.logging_config import get_logger
from powerprice.models.alert import AlertRecord, PassReport
from powerprice.models.price import (
    FetchResult,
    HealthResponse,
    PriceDataStatus,
    PricePoint,
    PriceStatistics,
    PriceZone,
)
from powerprice.models.subscriber import (
    Subscriber,
    SubscriberCreate,
    SubscriberStatistics,
    SubscriberUpdate,
)
from powerprice.services.price_alert_service import PriceAlertService

logger = get_logger(__name__)

router = APIRouter()

ALERT_PASSES = {
    "low-price": "run_low_price_pass",
    "high-price": "run_high_price_pass",
    "cheapest-hours": "run_cheapest_hours_pass",
    "daily-summary": "run_daily_summary_pass",
}


def get_service(request: Request) -> PriceAlertService:
    return request.app.state.service


def _parse_zone(zone: str) -> PriceZone:
    try:
        return PriceZone.parse(zone)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _raise_http_error(error: Exception, **context) -> None:
    """Map a service exception to an HTTP error response."""
    if isinstance(error, HTTPException):
        raise error
    if isinstance(error, ValidationError):
        raise HTTPException(status_code=400, detail=str(error))
    if isinstance(error, SubscriberNotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PriceAlertException):
        logger.error("Price alert error", error=str(error), **context)
    else:
        logger.error("Unexpected error", error=str(error), **context)
    raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint for monitoring and load balancers.

    Reports database connectivity, scheduler state and how long ago prices
    were last written.
    """
    service = get_service(request)
    tz = pytz.timezone(settings.timezone)
    try:
        db_healthy = await service.db.health_check()
        latest = await service.store.latest_timestamp()
        last_insert = await service.store.latest_insert_time()

        data_age_hours = None
        data_status = "unknown"
        age = data_age(last_insert)
        if age is not None:
            data_age_hours = round(age.total_seconds() / 3600, 1)
            data_status = "fresh" if age <= MAX_DATA_AGE else "stale"

        scheduler = getattr(request.app.state, "scheduler", None)
        details = {
            "service": "power-price-alerts",
            "database": "ok" if db_healthy else "unavailable",
            "scheduler_running": bool(scheduler and scheduler.is_running),
            "latest_price_hour": latest.astimezone(tz).isoformat() if latest else None,
            "last_insert": last_insert.astimezone(tz).isoformat() if last_insert else None,
            "data_age_hours": data_age_hours,
            "data_status": data_status,
        }

        return HealthResponse(
            status="healthy" if db_healthy else "unhealthy",
            timestamp=datetime.now(tz),
            details=details,
        )

    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.now(tz),
            details={"service": "power-price-alerts", "error": str(e)},
        )


# Prices


@router.get("/prices/{zone}/current", response_model=PricePoint)
async def get_current_price(zone: str, request: Request):
    """Price of the current hour in a zone; 404 if it has not been fetched."""
    price_zone = _parse_zone(zone)
    try:
        point = await get_service(request).get_current_price(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)
    if point is None:
        raise HTTPException(status_code=404, detail=f"No price data for the current hour in {price_zone.value}")
    return point


@router.get("/prices/{zone}/today", response_model=List[PricePoint])
async def get_todays_prices(zone: str, request: Request):
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_todays_prices(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)


@router.get("/prices/{zone}/tomorrow", response_model=List[PricePoint])
async def get_tomorrows_prices(zone: str, request: Request):
    """Tomorrow's prices; empty until they are published (around 13:00)."""
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_tomorrows_prices(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)


@router.get("/prices/{zone}/date/{day}", response_model=List[PricePoint])
async def get_prices_for_date(zone: str, day: date, request: Request):
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_prices_for_date(price_zone, day)
    except Exception as e:
        _raise_http_error(e, zone=zone, date=day.isoformat())


@router.get("/prices/{zone}/cheapest", response_model=List[PricePoint])
async def get_cheapest_hours(
    zone: str,
    request: Request,
    limit: int = Query(default=3, description="Number of hours to return", ge=1, le=24),
):
    """
    The cheapest hours of today, cheapest first.

    Equal prices are ordered by the earlier hour.
    """
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_cheapest_hours(price_zone, limit)
    except Exception as e:
        _raise_http_error(e, zone=zone, limit=limit)


@router.get("/prices/{zone}/statistics", response_model=PriceStatistics)
async def get_statistics(zone: str, request: Request):
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_statistics(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)


@router.get("/prices/{zone}/status", response_model=PriceDataStatus)
async def get_price_data_status(zone: str, request: Request):
    price_zone = _parse_zone(zone)
    try:
        return await get_service(request).get_price_data_status(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)


@router.post("/prices/fetch", response_model=List[FetchResult])
async def trigger_fetch(
    request: Request,
    zone: Optional[str] = Query(default=None, description="Zone to fetch; all zones when omitted"),
):
    """Fetch today's prices now instead of waiting for the scheduler."""
    price_zone = _parse_zone(zone) if zone else None
    try:
        results = await get_service(request).trigger_manual_fetch(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)
    return list(results.values())


# Subscribers


@router.post("/subscribers", response_model=Subscriber, status_code=201)
async def register_subscriber(payload: SubscriberCreate, request: Request):
    try:
        return await get_service(request).register_subscriber(
            email=payload.email,
            zone=payload.zone,
            alert_threshold=payload.alert_threshold,
            alert_enabled=payload.alert_enabled,
        )
    except Exception as e:
        _raise_http_error(e)


@router.get("/subscribers", response_model=List[Subscriber])
async def list_subscribers(
    request: Request,
    zone: Optional[str] = Query(default=None, description="Only subscribers in this zone"),
):
    price_zone = _parse_zone(zone) if zone else None
    try:
        return await get_service(request).list_subscribers(price_zone)
    except Exception as e:
        _raise_http_error(e, zone=zone)


@router.get("/subscribers/statistics", response_model=SubscriberStatistics)
async def get_subscriber_statistics(request: Request):
    try:
        return await get_service(request).subscriber_statistics()
    except Exception as e:
        _raise_http_error(e)


@router.get("/subscribers/{subscriber_id}", response_model=Subscriber)
async def get_subscriber(subscriber_id: int, request: Request):
    try:
        subscriber = await get_service(request).get_subscriber(subscriber_id)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)
    if subscriber is None:
        raise HTTPException(status_code=404, detail=f"Subscriber not found: {subscriber_id}")
    return subscriber


@router.put("/subscribers/{subscriber_id}", response_model=Subscriber)
async def update_subscriber(subscriber_id: int, payload: SubscriberUpdate, request: Request):
    """Update preferences. A threshold sent as null clears it; omitted fields are kept."""
    kwargs = {"zone": payload.zone, "alert_enabled": payload.alert_enabled}
    if "alert_threshold" in payload.model_fields_set:
        kwargs["alert_threshold"] = payload.alert_threshold
    try:
        return await get_service(request).update_subscriber_preferences(subscriber_id, **kwargs)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


@router.patch("/subscribers/{subscriber_id}/alerts/enable", response_model=Subscriber)
async def enable_alerts(subscriber_id: int, request: Request):
    try:
        return await get_service(request).enable_alerts(subscriber_id)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


@router.patch("/subscribers/{subscriber_id}/alerts/disable", response_model=Subscriber)
async def disable_alerts(subscriber_id: int, request: Request):
    try:
        return await get_service(request).disable_alerts(subscriber_id)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


@router.delete("/subscribers/{subscriber_id}", status_code=204)
async def delete_subscriber(subscriber_id: int, request: Request):
    try:
        await get_service(request).delete_subscriber(subscriber_id)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


# Alerts


@router.get("/alerts/subscriber/{subscriber_id}", response_model=List[AlertRecord])
async def get_alerts_for_subscriber(
    subscriber_id: int,
    request: Request,
    limit: Optional[int] = Query(default=None, description="Maximum number of alerts", ge=1),
):
    """Alert history of a subscriber, newest first."""
    try:
        return await get_service(request).get_alerts_for_subscriber(subscriber_id, limit)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


@router.get("/alerts/subscriber/{subscriber_id}/today", response_model=List[AlertRecord])
async def get_todays_alerts_for_subscriber(subscriber_id: int, request: Request):
    try:
        return await get_service(request).get_todays_alerts_for_subscriber(subscriber_id)
    except Exception as e:
        _raise_http_error(e, subscriber_id=subscriber_id)


@router.post("/alerts/run/{pass_name}", response_model=PassReport)
async def run_alert_pass(pass_name: str, request: Request):
    """Run one alert pass now: low-price, high-price, cheapest-hours or daily-summary."""
    method = ALERT_PASSES.get(pass_name)
    if method is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown alert pass: {pass_name}. Valid values: {', '.join(ALERT_PASSES)}",
        )
    try:
        return await getattr(get_service(request), method)()
    except Exception as e:
        _raise_http_error(e, alert_pass=pass_name)


@router.delete("/alerts/cleanup", response_model=Dict[str, int])
async def cleanup_old_data(request: Request):
    """Delete price points and alert records past their retention period."""
    try:
        return await get_service(request).cleanup()
    except Exception as e:
        _raise_http_error(e)


# Scheduler


@router.post("/scheduler/jobs/{job_name}/run")
async def run_scheduled_job(job_name: str, request: Request):
    """
    Run a scheduled job now, e.g. hourly-prices or retention.

    Waits for a run of the same job that is already in progress.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not available")
    try:
        success = await scheduler.run_job_now(job_name)
    except Exception as e:
        _raise_http_error(e, job=job_name)
    return {"job": job_name, "success": success}
