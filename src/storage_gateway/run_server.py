from src.storage_gateway.app import create_production_app


# Served with: uvicorn src.storage_gateway.run_server:app
app = create_production_app()
