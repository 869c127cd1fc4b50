"""
FastAPI routers grouped by audience (auth, public catalog, portal, admin).

Each file inside this package exposes an APIRouter that is included in the
main application (app.py). Endpoints stay thin: they validate input with the
schemas, call a service and shape the JSON envelope.
"""
