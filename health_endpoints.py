import azure.functions as func
from function_app import app
from services.sheet_store import MemorySheetStore, get_sheet_store
from utils.cors import build_cors_headers


@app.function_name(name="HealthApi")
@app.route(route="health", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def health_api(req: func.HttpRequest) -> func.HttpResponse:  # pylint: disable=unused-argument
    cors = build_cors_headers(req, ["GET", "OPTIONS"])
    if req.method == "OPTIONS":
        return func.HttpResponse("", status_code=204, headers=cors)
    backend = "memory" if isinstance(get_sheet_store(), MemorySheetStore) else "table"
    return func.HttpResponse(f"OK ({backend})", status_code=200, headers=cors)
