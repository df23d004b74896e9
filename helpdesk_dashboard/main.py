"""
Helpdesk Dashboard - FastAPI Backend
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from helpdesk_dashboard.config import get_settings
from helpdesk_dashboard.routes import dashboard, health
from helpdesk_dashboard.middleware.logging_middleware import LoggingMiddleware

settings = get_settings()

app = FastAPI(
    title="Helpdesk Dashboard",
    description="Freshservice ticket analytics API",
    version="1.0.0"
)

# Middleware runs bottom-up: logging wraps the app, CORS wraps logging
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers define their own prefixes
app.include_router(dashboard.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"message": "Helpdesk Dashboard API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.fastapi_host, port=settings.fastapi_port)
