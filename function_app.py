import azure.functions as func

app = func.FunctionApp()

# Import endpoint modules so their routes register with the shared app.
import health_endpoints  # noqa
import company_endpoints  # noqa
import opportunity_endpoints  # noqa
import workflow_endpoints  # noqa
import sales_endpoints  # noqa
import dashboard_endpoints  # noqa
