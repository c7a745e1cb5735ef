"""
Response envelope and the shared page pipeline

Every page endpoint runs the same steps: fetch both feeds, compute the
page's deterministic data, then add insights unless ``mode=fast``. With
``mode=insights`` only the insight fields are returned.
"""
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi.responses import JSONResponse

from brandbuddy.connectors import ConfigurationError, FeedError
from brandbuddy.services import feed_service
from brandbuddy.services.insight_service import information_not_available_insight
from brandbuddy.utils.helpers import iso_timestamp, utc_now
from brandbuddy.utils.logger import log

VALID_MODES = ("fast", "insights")

DataBuilder = Callable[[List[Dict], List[Dict], datetime], Dict]
InsightBuilder = Callable[[List[Dict], List[Dict], Dict, datetime], Awaitable[Dict]]


def success_response(data: Any, message: Optional[str] = None) -> Dict:
    return {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": iso_timestamp(),
    }


def error_response(error: str, details: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "details": details,
            "timestamp": iso_timestamp(),
        }
    )


def invalid_request_response(message: str, details: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request",
            "details": details or message,
            "message": message,
            "timestamp": iso_timestamp(),
        }
    )


def method_not_allowed_response(method: str, path: str) -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={
            "success": False,
            "error": "Method not allowed",
            "details": f"{method} is not supported on {path}",
            "timestamp": iso_timestamp(),
        }
    )


def degraded_data(page: str, build_data: DataBuilder, now: datetime) -> Dict:
    """The page's data computed over no records, with one info insight"""
    data = build_data([], [], now)
    data["insights"] = [information_not_available_insight(page, now=now)]
    data["lastUpdated"] = iso_timestamp(now)
    return data


async def run_page(
    page: str,
    mode: Optional[str],
    build_data: DataBuilder,
    build_insights: InsightBuilder,
    limit: Optional[int] = None,
    message: Optional[Callable[[List[Dict], List[Dict]], str]] = None
):
    """
    Fetch, compute and respond for one page.

    build_insights returns the insight fields to merge into the data
    (at least ``insights``); it is skipped in fast mode, where ``insights``
    is an empty list.
    """
    if mode not in VALID_MODES:
        mode = None
    now = utc_now()
    log.info(f"{page} request (mode={mode or 'full'})")

    try:
        try:
            products, shipments = await feed_service.fetch_feeds(limit=limit)
        except FeedError as e:
            if mode == "insights":
                raise
            log.warning(f"{page} feeds unavailable, returning empty envelope: {str(e)}")
            return success_response(
                degraded_data(page, build_data, now),
                message="Information Not Available: upstream data could not be loaded"
            )

        data = build_data(products, shipments, now)
        if mode == "insights":
            insight_fields = await build_insights(products, shipments, data, now)
            insight_fields["lastUpdated"] = iso_timestamp(now)
            return success_response(insight_fields, message=f"{page} insights generated")

        if mode == "fast":
            data["insights"] = []
        else:
            data.update(await build_insights(products, shipments, data, now))
        data["lastUpdated"] = iso_timestamp(now)

        text = message(products, shipments) if message else f"{page} data retrieved successfully"
        return success_response(data, message=text)

    except ConfigurationError as e:
        log.error(f"{page} configuration error: {str(e)}")
        return error_response("Configuration error", str(e))
    except FeedError as e:
        log.error(f"{page} insights failed, feeds unavailable: {str(e)}")
        return error_response(f"Failed to generate {page} insights", str(e))
    except Exception as e:
        log.exception(f"Error serving {page} data: {str(e)}")
        return error_response(f"Failed to fetch {page} data", str(e))
