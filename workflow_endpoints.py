from __future__ import annotations

import azure.functions as func

from crm_shared import actor_name, error_response, failure_response, int_route_param, json_response, parse_body
from function_app import app
from services.container import get_services
from utils.cors import build_cors_headers


@app.function_name(name="CrmLeadUpgrade")
@app.route(route="crm/leads/{rowIndex}/upgrade", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_lead_upgrade(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    row_index = int_route_param(req, "rowIndex")
    if row_index is None:
        return error_response(cors=cors, status_code=400, message="rowIndex must be a number", code="validation_error")
    try:
        result = await get_services().workflow_service.upgrade_contact_to_opportunity(
            row_index, parse_body(req), actor_name(req)
        )
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(result, status_code=201, cors=cors)


@app.function_name(name="CrmLeadFile")
@app.route(route="crm/leads/{rowIndex}/file", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_lead_file(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    row_index = int_route_param(req, "rowIndex")
    if row_index is None:
        return error_response(cors=cors, status_code=400, message="rowIndex must be a number", code="validation_error")
    try:
        result = await get_services().workflow_service.file_contact(row_index, actor_name(req))
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(result, status_code=200, cors=cors)


@app.function_name(name="CrmContactLinkCard")
@app.route(
    route="crm/contacts/{contactId}/link-card",
    methods=["POST", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
async def crm_contact_link_card(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    contact_id = str(req.route_params.get("contactId") or "").strip()
    body = parse_body(req)
    try:
        row_index = int(body.get("rowIndex"))
    except (TypeError, ValueError):
        return error_response(cors=cors, status_code=400, message="rowIndex is required", code="validation_error")
    if not contact_id:
        return error_response(cors=cors, status_code=400, message="contact id is required", code="validation_error")
    try:
        result = await get_services().workflow_service.link_business_card_to_contact(
            contact_id, row_index, actor_name(req)
        )
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(result, status_code=200, cors=cors)
