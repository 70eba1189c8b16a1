from __future__ import annotations

import logging
from urllib.parse import unquote

import azure.functions as func

from crm_shared import actor_name, error_response, failure_response, json_response, parse_body
from function_app import app
from services.container import get_services
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)


def _company_name(req: func.HttpRequest) -> str:
    return unquote(str(req.route_params.get("companyName") or "")).strip()


@app.function_name(name="CrmCompanies")
@app.route(route="crm/companies", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_companies(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    try:
        companies = await get_services().company_service.get_company_list_with_activity()
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": companies}, status_code=200, cors=cors)


@app.function_name(name="CrmCompanyDetails")
@app.route(route="crm/companies/{companyName}/details", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_company_details(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    name = _company_name(req)
    if not name:
        return error_response(cors=cors, status_code=400, message="company name is required", code="validation_error")
    try:
        details = await get_services().company_service.get_company_details(name)
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": details}, status_code=200, cors=cors)


@app.function_name(name="CrmCompany")
@app.route(route="crm/companies/{companyName}", methods=["PUT", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_company(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["PUT", "DELETE", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    name = _company_name(req)
    if not name:
        return error_response(cors=cors, status_code=400, message="company name is required", code="validation_error")
    service = get_services().company_service
    modifier = actor_name(req)

    try:
        if req.method == "DELETE":
            result = await service.delete_company(name, modifier)
        else:
            body = parse_body(req)
            if not body:
                return error_response(cors=cors, status_code=400, message="no fields to update", code="validation_error")
            result = await service.update_company(name, body, modifier)
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response(result, status_code=200, cors=cors)


@app.function_name(name="CrmCompanyProfile")
@app.route(
    route="crm/companies/{companyName}/generate-profile",
    methods=["POST", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
async def crm_company_profile(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["POST", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    name = _company_name(req)
    if not name:
        return error_response(cors=cors, status_code=400, message="company name is required", code="validation_error")
    services = get_services()
    body = parse_body(req)

    try:
        introduction = await services.profile_client.generate_profile(name, body.get("context") or {})
        result = {"success": True, "data": {"introduction": introduction}}
        if body.get("save"):
            result = await services.company_service.update_company(
                name, {"introduction": introduction}, actor_name(req)
            )
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    logger.info("Generated profile for %s (saved=%s)", name, bool(body.get("save")))
    return json_response(result, status_code=200, cors=cors)
