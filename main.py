from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel, Session
import models.zone
import models.location_log
import models.location_approval  # Ensure these models are known by SQLModel for table creation
import models.admin_alert
import models.security_event
from db.session import engine
from db.seed import seed_default_zones
from contextlib import asynccontextmanager
from api.location_routes import router as location_router
from api.admin_location_routes import router as admin_location_router
import logging
import os
from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Load environment variables from .env file, if it exists
load_dotenv()

# Default values can be provided if the env var is not set
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN")

# Dev and production frontends
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = list(set([origin for origin in allowed_origins_list if origin]))

logger.info(f"CORS: Allowing origins: {allowed_origins_list}")

# When We Start, Create the DB Tables if they don't exist and make sure a zone is configured
@asynccontextmanager
async def lifespan(app: FastAPI):

    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_default_zones(session)

    yield


# Geofenced access service
app = FastAPI(lifespan=lifespan)

# Browser clients post device positions from these origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list, # Use the constructed list
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Connects Location Routes (access check / approval polling) to main app
app.include_router(location_router, prefix="/location", tags=["Location"])
app.include_router(admin_location_router, prefix="/admin/location", tags=["Admin", "Location Access"])
