"""
MCP Gateway Server - Unified entry point for the timetable service.

This server imports the raw functions of the timetable MCP wrapper and
registers them on a single FastMCP instance. Every tool call is routed to
the distributed timetable service via HTTP.
"""
from __future__ import annotations

import typing as t

from fastmcp import FastMCP

# Import the raw functions from the MCP wrapper (not the decorated versions)
# This allows us to register them with our own unified FastMCP instance
from mcp_wrappers.timetable.mcp_service import (
    _create_pattern, _list_patterns, _remove_pattern,
    _list_occurrences, _show_timetable,
    _retime_occurrence, _relocate_occurrence, _delete_occurrence,
    _add_holiday, _put_class,
    TIMETABLE_SERVICE_URL
)

# Import models for type hints
from timetable_server.models import ClassInfo, Holiday, Occurrence, Override, Pattern
from timetable_server.reconciler import RelocationResult

# Create the unified MCP server
mcp = FastMCP("TimetableDistributedGateway")


def get_service_status() -> dict[str, str]:
    """
    Get the status of the distributed services.

    Reports the configured URL of each service to help with debugging and
    service discovery.
    """
    return {
        "timetable_service": TIMETABLE_SERVICE_URL,
        "gateway_status": "running"
    }


# Pattern Tools
@mcp.tool()
def create_pattern(
    program_id: str,
    class_id: str,
    day_of_week: str,
    start_time: str,
    end_time: str,
    start_date: str = "",
    end_date: str = ""
) -> Pattern:
    """Schedules a class into a weekly slot."""
    return _create_pattern(program_id, class_id, day_of_week, start_time, end_time, start_date, end_date)


@mcp.tool()
def list_patterns(program_id: str) -> list[Pattern]:
    """Lists a program's weekly slots."""
    return _list_patterns(program_id)


@mcp.tool()
def remove_pattern(pattern_id: str) -> str:
    """Removes a weekly slot and every one-off change made to it."""
    return _remove_pattern(pattern_id)


# Occurrence Tools
@mcp.tool()
def list_occurrences(program_id: str, start: str, end: str = "") -> list[Occurrence]:
    """Lists the concrete classes of a program between two dates."""
    return _list_occurrences(program_id, start, end)


@mcp.tool()
def show_timetable(program_id: str, start: str, end: str = "") -> str:
    """Displays a program's classes between two dates in a nicely formatted view."""
    return _show_timetable(program_id, start, end)


@mcp.tool()
def retime_occurrence(
    pattern_id: str,
    date: str,
    start_time: str,
    end_time: str,
    active_during_holiday: t.Optional[bool] = None
) -> Override:
    """Changes the times of one occurrence without touching the weekly slot."""
    return _retime_occurrence(pattern_id, date, start_time, end_time, active_during_holiday)


@mcp.tool()
def relocate_occurrence(
    pattern_id: str,
    from_date: str,
    to_date: str,
    start_time: str = "",
    end_time: str = "",
    active_during_holiday: t.Optional[bool] = None
) -> RelocationResult:
    """Moves one occurrence to another date, optionally at other times."""
    return _relocate_occurrence(pattern_id, from_date, to_date, start_time, end_time, active_during_holiday)


@mcp.tool()
def delete_occurrence(pattern_id: str, date: str) -> Override:
    """Cancels one occurrence; the rest of the series is kept."""
    return _delete_occurrence(pattern_id, date)


# Calendar Data Tools
@mcp.tool()
def add_holiday(date: str, name: str = "") -> Holiday:
    """Marks a date as a holiday."""
    return _add_holiday(date, name)


@mcp.tool()
def put_class(class_id: str, title: str, subject: str = "", tutor_name: str = "") -> ClassInfo:
    """Creates or replaces the title, subject and tutor shown for a class."""
    return _put_class(class_id, title, subject, tutor_name)


@mcp.tool()
def get_gateway_info() -> dict[str, str]:
    """
    Get information about the MCP Gateway and connected services.

    This tool provides status information about the gateway and the
    URLs of the distributed services it connects to.
    """
    return get_service_status()


def get_tool_catalog() -> dict[str, list[str]]:
    """Tools exposed by the gateway, grouped by the service that backs them."""
    return {
        "timetable_service": [
            "create_pattern - Schedule a class into a weekly slot",
            "list_patterns - List a program's weekly slots",
            "remove_pattern - Remove a slot and its one-off changes",
            "list_occurrences - List concrete classes between two dates",
            "show_timetable - Display formatted classes between two dates",
            "retime_occurrence - Change the times of one occurrence",
            "relocate_occurrence - Move one occurrence to another date",
            "delete_occurrence - Cancel one occurrence",
            "add_holiday - Mark a date as a holiday",
            "put_class - Set the title, subject and tutor of a class"
        ],
        "gateway_tools": [
            "get_gateway_info - Get gateway and service status information",
            "list_available_tools - List all available tools by service"
        ]
    }


@mcp.tool()
def list_available_tools() -> dict[str, list[str]]:
    """
    List all available tools organized by service.

    This tool provides an overview of all tools available through
    the distributed architecture.
    """
    return get_tool_catalog()


if __name__ == "__main__":
    print("🌟 Starting MCP Gateway Server")
    print("📋 Available Services:")

    status = get_service_status()
    for service_name, service_url in status.items():
        if service_name != "gateway_status":
            print(f"  • {service_name}: {service_url}")

    print(f"\n🚀 Gateway Status: {status['gateway_status']}")
    print("\nTools available:")
    tools = get_tool_catalog()
    for service_name, tool_list in tools.items():
        print(f"\n📦 {service_name}:")
        for tool in tool_list:
            print(f"    - {tool}")

    print(f"\n🌐 Starting MCP server...")
    mcp.run()
