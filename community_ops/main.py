from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import uvicorn

from .core.config import settings
from .core.firebase_init import initialize_firebase, get_firebase_status

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Community Ops API",
    description="Occupancy, pending-work badges, bulk actions and request approvals for the community console",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Adjust as needed for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_event():
    """Initialize Firebase; the app still starts without it"""
    logger.info("Initializing Firebase for FastAPI app...")
    if get_firebase_status()['available'] or initialize_firebase():
        logger.info("Firebase initialized successfully")
    else:
        logger.warning("Firebase initialization failed - app will run without Firebase features")

def safe_include_router(router_module_path: str, router_name: str = "router"):
    """Safely include a router with error handling"""
    try:
        module = __import__(router_module_path, fromlist=[router_name])
        router = getattr(module, router_name)
        app.include_router(router)
        logger.info(f"Successfully included {router_module_path}")
        return True
    except Exception as e:
        logger.exception(f"Failed to include {router_module_path}: {str(e)}")
        return False

logger.info("Loading routers...")

routers_to_load = [
    ("community_ops.routers.units", "Units"),
    ("community_ops.routers.users", "Users"),
    ("community_ops.routers.dashboard", "Dashboard"),
    ("community_ops.routers.bulk_actions", "Bulk Actions"),
    ("community_ops.routers.unit_requests", "Unit Requests"),
    ("community_ops.routers.device_resets", "Device Reset Requests"),
]

successful_routers = []
failed_routers = []

for router_path, router_description in routers_to_load:
    if safe_include_router(router_path):
        successful_routers.append(router_description)
    else:
        failed_routers.append(router_description)

logger.info(f"Successfully loaded routers: {successful_routers}")
if failed_routers:
    logger.warning(f"Failed to load routers: {failed_routers}")

@app.get("/")
async def root():
    return {
        "message": "Welcome to the Community Ops API",
        "firebase_status": get_firebase_status(),
        "loaded_routers": successful_routers,
        "failed_routers": failed_routers
    }

@app.get("/health")
async def health_check():
    firebase_status = get_firebase_status()
    return {
        "status": "healthy",
        "firebase_available": firebase_status['available'],
        "loaded_routers": len(successful_routers),
        "failed_routers": len(failed_routers)
    }

if __name__ == "__main__":
    uvicorn.run("community_ops.main:app", host="0.0.0.0", port=8000, reload=True)
