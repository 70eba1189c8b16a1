import azure.functions as func

from crm_shared import failure_response, json_response
from function_app import app
from services.container import get_services
from utils.cors import build_cors_headers


@app.function_name(name="CrmSalesAnalysis")
@app.route(route="crm/sales-analysis", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
async def crm_sales_analysis(req: func.HttpRequest) -> func.HttpResponse:
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    try:
        data = await get_services().sales_analysis_service.get_sales_analysis_data(
            req.params.get("startDate"), req.params.get("endDate")
        )
    except Exception as exc:  # pylint: disable=broad-except
        return failure_response(exc, cors)
    return json_response({"success": True, "data": data}, status_code=200, cors=cors)
