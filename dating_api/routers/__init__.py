"""
FastAPI routers grouped by domain (auth, users, quota).

Each module exposes an APIRouter included by dating_api.app.create_app().
"""
