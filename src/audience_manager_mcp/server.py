"""FastMCP server for CM360 audience management."""

import asyncio
import logging
import re
from enum import Enum
from typing import Any

from fastmcp import FastMCP
from pydantic import BaseModel, Field

from audience_manager_mcp import __version__
from audience_manager_mcp.clients.cm360 import (
    CampaignManagerApi,
    CampaignManagerAuthenticator,
    CampaignManagerFacade,
)
from audience_manager_mcp.core.config import Environment, get_settings
from audience_manager_mcp.core.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    DataError,
    RateLimitError,
    ResourceNotFoundError,
    ValidationError,
)
from audience_manager_mcp.data_providers.audience_sheet import AudienceSheet
from audience_manager_mcp.models.audience import AudiencePlan
from audience_manager_mcp.services.audience_loader import AudienceLoader
from audience_manager_mcp.services.audience_processor import AudienceProcessor

logger = logging.getLogger(__name__)


# ============================================================================
# Error Codes
# ============================================================================


class ErrorCode(str, Enum):
    """Error codes for programmatic error handling."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_INPUT = "INVALID_INPUT"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
    SHEET_DATA_ERROR = "SHEET_DATA_ERROR"
    CUSTOM_VARIABLES_FETCH_ERROR = "CUSTOM_VARIABLES_FETCH_ERROR"
    FLOODLIGHTS_FETCH_ERROR = "FLOODLIGHTS_FETCH_ERROR"
    ADVERTISERS_FETCH_ERROR = "ADVERTISERS_FETCH_ERROR"
    AUDIENCES_LOAD_ERROR = "AUDIENCES_LOAD_ERROR"
    AUDIENCES_PROCESS_ERROR = "AUDIENCES_PROCESS_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Initialize MCP server
mcp = FastMCP("Audience Manager MCP Server")

TOOL_NAMES = [
    "get_custom_variables",
    "get_floodlight_activities",
    "get_advertisers",
    "load_audiences",
    "process_audiences",
    "extract_rules",
]


# ============================================================================
# Helper Functions
# ============================================================================


def sanitize_error_message(msg: str) -> str:
    """Remove potential credentials from error messages.

    Args:
        msg: Original error message

    Returns:
        Sanitized error message with credentials redacted

    Examples:
        >>> sanitize_error_message("Token abc123xyz456def789ghi failed")
        "Token [REDACTED] failed"
        >>> sanitize_error_message("user@example.com authentication failed")
        "[EMAIL_REDACTED] authentication failed"
    """
    # Bearer tokens and anything else that looks like one
    msg = re.sub(r"(Bearer\s+)\S+", r"\1[REDACTED]", msg)
    msg = re.sub(r"[A-Za-z0-9_-]{20,}", "[REDACTED]", msg)

    msg = re.sub(r"\b[\w.-]+@[\w.-]+\.\w+\b", "[EMAIL_REDACTED]", msg)

    msg = re.sub(
        r"(api[_-]?key|token|secret|password|credential)[\"']?\s*[:=]\s*[\"']?[^\s\"']+",
        r"\1=[REDACTED]",
        msg,
        flags=re.IGNORECASE,
    )

    return msg


def _error_response(e: Exception, operation: str, error_code: ErrorCode) -> dict[str, Any]:
    """Log ``e`` and map it to a structured tool error."""
    sanitized = sanitize_error_message(str(e))

    if isinstance(e, ConfigurationError):
        logger.error(f"Invalid configuration: {sanitized}")
        return _error(
            ErrorCode.INVALID_CONFIGURATION,
            f"Invalid configuration: {str(e)}",
            {"error_type": "configuration", "retry_allowed": False},
        )
    if isinstance(e, ValidationError):
        logger.error(f"Invalid input: {sanitized}")
        return _error(
            ErrorCode.INVALID_INPUT,
            f"Invalid input: {str(e)}",
            {"error_type": "validation", "retry_allowed": False},
        )
    if isinstance(e, DataError):
        logger.error(f"Invalid sheet data: {sanitized}")
        return _error(
            ErrorCode.SHEET_DATA_ERROR,
            f"Invalid sheet data: {str(e)}",
            {"error_type": "data", "retry_allowed": False},
        )
    if isinstance(e, ResourceNotFoundError):
        logger.error(f"Resource not found: {sanitized}")
        return _error(
            ErrorCode.PROFILE_NOT_FOUND,
            str(e),
            {"error_type": "not_found", "retry_allowed": False},
        )
    if isinstance(e, AuthenticationError):
        logger.error(f"Authentication failed: {sanitized}", exc_info=True)
        return _error(
            ErrorCode.INVALID_CREDENTIALS,
            "Authentication failed. Please check your credentials.",
            {"error_type": "authentication", "retry_allowed": False},
        )
    if isinstance(e, RateLimitError):
        logger.warning(f"Rate limit exceeded: {sanitized}")
        return _error(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            "API rate limit exceeded. Please try again later.",
            {"error_type": "rate_limit", "retry_allowed": True, "retry_after_seconds": 60},
        )
    if isinstance(e, APIError):
        logger.error(f"CM360 API error while {operation}: {sanitized}", exc_info=True)
        return _error(
            error_code,
            f"CM360 API error: {str(e)}",
            {"error_type": "api_error", "retry_allowed": True, "status_code": e.status_code},
        )

    logger.error(f"Unexpected error while {operation}: {sanitized}", exc_info=True)
    return _error(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please contact support if this persists.",
        {"error_type": "unexpected"},
    )


def _error(error_code: ErrorCode, message: str, details: dict[str, Any]) -> dict[str, Any]:
    return {
        "status": "error",
        "error_code": error_code,
        "message": message,
        "details": details,
        "data": [],
    }


# Global facade instance for reuse across requests
_facade_instance: CampaignManagerFacade | None = None


def reset_client_for_testing():
    """Reset the singleton facade instance (for testing only)."""
    global _facade_instance
    _facade_instance = None


def _get_facade() -> CampaignManagerFacade:
    """Get or create the CM360 facade (singleton pattern).

    The instance is reused across requests so that the resolved user profile
    and the OAuth2 token are shared.

    Raises:
        ConfigurationError: If the CM360 network or advertiser is not set
    """
    global _facade_instance

    if _facade_instance is not None:
        return _facade_instance

    settings = get_settings()
    settings.validate_required_settings()

    cm360 = settings.cm360
    api = CampaignManagerApi.from_config(cm360, CampaignManagerAuthenticator(cm360))
    _facade_instance = CampaignManagerFacade(
        cm360.network_id,
        cm360.advertiser_id,
        api,
        advertisers_filter=cm360.advertisers_filter,
    )
    return _facade_instance


def _get_sheet(request: "SheetRequest") -> AudienceSheet:
    sheets = get_settings().sheets
    return AudienceSheet(
        request.audiences_path or sheets.audiences_path,
        request.rules_path or sheets.rules_path,
    )


# ============================================================================
# Request Models
# ============================================================================


class AdvertisersRequest(BaseModel):
    """Request model for listing advertisers to share audiences with."""

    own_advertiser_id: str | None = Field(
        None, description="Advertiser to exclude (defaults to the configured one)"
    )


class SheetRequest(BaseModel):
    """Request model for tools reading or writing the audience sheets."""

    audiences_path: str | None = Field(
        None, description="Audiences CSV path (defaults to the configured one)"
    )
    rules_path: str | None = Field(
        None, description="Rules CSV path (defaults to the configured one)"
    )


class ProcessAudiencesRequest(SheetRequest):
    """Request model for pushing audience changes to CM360."""

    dry_run: bool = Field(
        False, description="Only report the planned changes without pushing them"
    )


# ============================================================================
# Tools - Lookup data
# ============================================================================


@mcp.tool()
async def get_custom_variables() -> dict[str, Any]:
    """
    Fetch the custom Floodlight variables of the configured advertiser.

    Variables are returned as "U1:Report name" strings, the format used by
    the variable column of the Rules sheet.
    """
    try:
        loader = AudienceLoader(_get_facade(), _get_sheet(SheetRequest()))
        data = await asyncio.to_thread(loader.fetch_custom_variables)
        return {
            "status": "success",
            "message": f"Retrieved {len(data)} custom variables",
            "metadata": {"record_count": len(data)},
            "data": data,
        }
    except Exception as e:
        return _error_response(
            e, "fetching custom variables", ErrorCode.CUSTOM_VARIABLES_FETCH_ERROR
        )


@mcp.tool()
async def get_floodlight_activities() -> dict[str, Any]:
    """
    Fetch the Floodlight activities of the configured advertiser.

    The display name is the "Name (id)" form expected by the floodlight
    column of the Audiences sheet.
    """
    try:
        loader = AudienceLoader(_get_facade(), _get_sheet(SheetRequest()))
        activities = await asyncio.to_thread(loader.fetch_floodlight_activities)
        data = [{"id": id_, "display_name": name} for id_, name in activities]
        return {
            "status": "success",
            "message": f"Retrieved {len(data)} Floodlight activities",
            "metadata": {"record_count": len(data)},
            "data": data,
        }
    except Exception as e:
        return _error_response(
            e, "fetching Floodlight activities", ErrorCode.FLOODLIGHTS_FETCH_ERROR
        )


@mcp.tool()
async def get_advertisers(request: AdvertisersRequest) -> dict[str, Any]:
    """
    Fetch the advertisers audiences can be shared with.

    All pages are fetched. The advertiser that owns the audiences is left out.
    """
    try:
        loader = AudienceLoader(_get_facade(), _get_sheet(SheetRequest()))
        advertisers = await asyncio.to_thread(
            loader.fetch_advertisers, request.own_advertiser_id
        )
        data = [{"id": id_, "display_name": name} for id_, name in advertisers]
        return {
            "status": "success",
            "message": f"Retrieved {len(data)} advertisers",
            "metadata": {"record_count": len(data)},
            "data": data,
        }
    except Exception as e:
        return _error_response(e, "fetching advertisers", ErrorCode.ADVERTISERS_FETCH_ERROR)


# ============================================================================
# Tools - Audiences
# ============================================================================


@mcp.tool()
async def load_audiences(request: SheetRequest) -> dict[str, Any]:
    """
    Load all remarketing lists of the advertiser into the audience sheets.

    Both the Audiences and the Rules sheet are overwritten.
    """
    try:
        sheet = _get_sheet(request)
        loader = AudienceLoader(_get_facade(), sheet)
        audiences = await asyncio.to_thread(loader.load_audiences)
        return {
            "status": "success",
            "message": f"Loaded {len(audiences)} audiences",
            "metadata": {
                "audiences_path": str(sheet.audiences_path),
                "rules_path": str(sheet.rules_path),
                "record_count": len(audiences),
            },
            "data": [audience.model_dump() for audience in audiences],
        }
    except Exception as e:
        return _error_response(e, "loading audiences", ErrorCode.AUDIENCES_LOAD_ERROR)


@mcp.tool()
async def process_audiences(request: ProcessAudiencesRequest) -> dict[str, Any]:
    """
    Create, update and share the audiences changed in the Audiences sheet.

    Per-audience failures do not stop the run; they are reported in the
    status column and in the returned results.
    """
    try:
        sheet = _get_sheet(request)
        processor = AudienceProcessor(_get_facade(), sheet)

        if request.dry_run:
            plans = await asyncio.to_thread(_plan_audiences, processor)
            return {
                "status": "success",
                "message": f"{len(plans)} audiences have pending changes",
                "metadata": {"dry_run": True, "record_count": len(plans)},
                "data": [plan.model_dump() for plan in plans],
            }

        results = await asyncio.to_thread(processor.process_audiences)
        failed = [result for result in results if not result.success]
        return {
            "status": "success",
            "message": (
                f"Processed {len(results)} audiences ({len(failed)} failed)"
            ),
            "metadata": {
                "dry_run": False,
                "record_count": len(results),
                "failed_count": len(failed),
            },
            "data": [result.model_dump() for result in results],
        }
    except Exception as e:
        return _error_response(e, "processing audiences", ErrorCode.AUDIENCES_PROCESS_ERROR)


@mcp.tool()
async def extract_rules(request: SheetRequest) -> dict[str, Any]:
    """
    Rebuild the Rules sheet from the JSON column of the Audiences sheet.

    Useful to restore rules after the Rules sheet was edited by mistake.
    """
    try:
        sheet = _get_sheet(request)
        loader = AudienceLoader(_get_facade(), sheet)
        count = await asyncio.to_thread(loader.extract_and_output_rules)
        return {
            "status": "success",
            "message": f"Wrote {count} rules",
            "metadata": {"rules_path": str(sheet.rules_path), "record_count": count},
            "data": [],
        }
    except Exception as e:
        return _error_response(e, "extracting rules", ErrorCode.SHEET_DATA_ERROR)


def _plan_audiences(processor: AudienceProcessor) -> list[AudiencePlan]:
    plans = []
    for index, row in enumerate(processor.sheet.read_audience_rows()):
        plan = processor.plan_audience(row, index)
        if plan is not None:
            plans.append(plan)
    return plans


# ============================================================================
# Resources
# ============================================================================


@mcp.resource("resource://health")
def health_check() -> dict[str, Any]:
    """
    Provides server health status and configuration information.
    """
    cm360 = get_settings().cm360
    return {
        "status": "healthy",
        "version": __version__,
        "server": "Audience Manager MCP Server",
        "cm360_configured": bool(cm360.network_id and cm360.advertiser_id),
        "tools_available": TOOL_NAMES,
    }


@mcp.resource("resource://config")
def get_config() -> dict[str, Any]:
    """
    Provides the server's configuration status (without exposing secrets).
    """
    settings = get_settings()
    return {
        "server_version": __version__,
        "environment": settings.environment,
        "cm360": {
            "network_id": settings.cm360.network_id,
            "advertiser_id": settings.cm360.advertiser_id,
            "api_version": settings.cm360.api_version,
            "advertisers_filter": settings.cm360.advertisers_filter,
            "service_account_configured": bool(settings.cm360.service_account_key_path),
        },
        "sheets": {
            "audiences_path": str(settings.sheets.audiences_path),
            "rules_path": str(settings.sheets.rules_path),
            "list_source": settings.sheets.list_source,
            "default_life_span": settings.sheets.default_life_span,
        },
    }


# ============================================================================
# Server Factory
# ============================================================================


def create_mcp_server() -> FastMCP:
    """
    Create and return the configured MCP server instance.

    Returns:
        FastMCP: The configured server instance ready to run.
    """
    settings = get_settings()
    if settings.environment == Environment.PRODUCTION and settings.debug:
        logger.warning(
            "DEBUG logging enabled in production environment. "
            "This may expose sensitive information in logs."
        )
    return mcp


def main() -> None:
    """Run the MCP server with logging configured from the environment."""
    from audience_manager_mcp.core.config import setup_logging

    setup_logging(get_settings())
    create_mcp_server().run()


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    main()
