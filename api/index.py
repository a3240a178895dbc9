from mangum import Mangum

from courier_ledger.api import app

# Vercel serves the functions under /api
handler = Mangum(app, api_gateway_base_path="/api")
