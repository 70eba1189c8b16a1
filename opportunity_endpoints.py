from __future__ import annotations

import azure.functions as func

from crm_shared import (
    actor_name,
    error_response,
    failure_response,
    int_route_param,
    json_response,
    page_param,
    parse_body,
)
from function_app import app
from services.container import get_services
from utils.cors import build_cors_headers


@app.function_name(name="CrmOpportunities")
@app.route(route="crm/opportunities", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_opportunities(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    services = get_services()

    if req.method == "GET":
        filters = {
            "assignee": req.params.get("assignee"),
            "type": req.params.get("type"),
            "stage": req.params.get("stage"),
        }
        try:
            result = await services.opportunity_service.search_opportunities(req.params.get("q") or "", page_param(req), filters)
        except Exception as exc:  # pylint: disable=broad-except
            return failure_response(exc, cors)
        if isinstance(result, list):
            result = {"data": result}
        return json_response({"success": True, **result}, status_code=200, cors=cors)

    body = parse_body(req)
    if not body:
        return error_response(cors=cors, status_code=400, message="request body is required", code="validation_error")
    try:
        created = await services.workflow_service.create_opportunity(body, actor_name(req))
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(created, status_code=201, cors=cors)


@app.function_name(name="CrmOpportunityDetails")
@app.route(
    route="crm/opportunities/{opportunityId}/details",
    methods=["GET", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
async def crm_opportunity_details(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    opportunity_id = str(req.route_params.get("opportunityId") or "").strip()
    if not opportunity_id:
        return error_response(cors=cors, status_code=400, message="opportunity id is required", code="validation_error")
    try:
        details = await get_services().opportunity_service.get_opportunity_details(opportunity_id)
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": details}, status_code=200, cors=cors)


@app.function_name(name="CrmOpportunityUpdate")
@app.route(route="crm/opportunities/{rowIndex}", methods=["PUT", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_opportunity_update(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["PUT", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    row_index = int_route_param(req, "rowIndex")
    if row_index is None:
        return error_response(cors=cors, status_code=400, message="rowIndex must be a number", code="validation_error")
    body = parse_body(req)
    if not body:
        return error_response(cors=cors, status_code=400, message="no fields to update", code="validation_error")
    try:
        result = await get_services().opportunity_writer.update_opportunity(row_index, body, actor_name(req))
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(result, status_code=200, cors=cors)
