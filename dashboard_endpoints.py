import azure.functions as func

from crm_shared import failure_response, json_response, page_param
from function_app import app
from services.container import get_services
from utils.cors import build_cors_headers


@app.function_name(name="CrmLeads")
@app.route(route="crm/leads", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_leads(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    try:
        result = await get_services().contact_reader.search_contacts(req.params.get("q") or "", page_param(req))
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    if isinstance(result, list):
        result = {"data": result}
    return json_response({"success": True, **result}, status_code=200, cors=cors)


@app.function_name(name="CrmOpportunitiesByCounty")
@app.route(
    route="crm/dashboard/opportunities-by-county",
    methods=["GET", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
async def crm_opportunities_by_county(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    try:
        data = await get_services().opportunity_reader.get_opportunities_by_county(req.params.get("type"))
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": data}, status_code=200, cors=cors)


@app.function_name(name="CrmOpportunitiesByStage")
@app.route(
    route="crm/dashboard/opportunities-by-stage",
    methods=["GET", "OPTIONS"],
    auth_level=func.AuthLevel.ANONYMOUS,
)
async def crm_opportunities_by_stage(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    try:
        data = await get_services().opportunity_reader.get_opportunities_by_stage()
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": data}, status_code=200, cors=cors)
