"""
AWS Lambda entry point for the metadata catalog API
"""
from mangum import Mangum
from main import app

# API Gateway (REST or HTTP API) events are translated to ASGI requests
handler = Mangum(app, lifespan="off")
