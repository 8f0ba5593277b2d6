import logging
import time
from typing import List

from fastapi import FastAPI, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import schemas
from .db import engine, Base, get_db, SessionLocal
from .exceptions import ServiceError, ValidationRejected, RegistryUnavailable
from .registry_client import RegistryClient
from .utils import REGISTRY_BASE_URL, REGISTRY_API_KEY
from .workflows import CompanyWorkflow, UserWorkflow

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Create tables if they don't exist yet
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables (companies, users) verified/created.")
except Exception as e:
    logger.error(f"Error initializing database: {e}", exc_info=True)

app = FastAPI(
    title="Company Service",
    description="Manages companies and their users. Companies are validated against the tax id registry before being stored.",
    version="1.0.0"
)

app.state.registry_client = RegistryClient(REGISTRY_BASE_URL, REGISTRY_API_KEY)

# --- Prometheus metrics ---
REQUEST_COUNT = Counter("company_requests_total", "Total requests", ["method", "endpoint", "status_code"])
REQUEST_LATENCY = Histogram("company_request_latency_seconds", "Request latency", ["endpoint"])
COMPANY_CREATED_COUNT = Counter("company_companies_created_total", "Companies created")
REGISTRY_REJECTED_COUNT = Counter("company_registry_rejections_total", "Company creations refused by the registry gate", ["reason"])
USER_CREATED_COUNT = Counter("company_users_created_total", "Users created")
CASCADE_DELETED_USERS = Counter("company_cascade_deleted_users_total", "Users removed together with their company")


def _endpoint_label(path: str) -> str:
    parts = path.split("/")
    if len(parts) > 2 and parts[1] in ("companies", "users") and parts[2].isdigit():
        return f"/{parts[1]}/{{id}}"
    return path


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    finally:
        latency = time.time() - start_time
        endpoint = _endpoint_label(request.url.path)
        final_status_code = getattr(response, 'status_code', status_code)
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status_code=final_status_code).inc()
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# --- Dependencies ---

def get_registry_client(request: Request) -> RegistryClient:
    return request.app.state.registry_client

def get_company_workflow(
    db: Session = Depends(get_db),
    registry: RegistryClient = Depends(get_registry_client),
) -> CompanyWorkflow:
    return CompanyWorkflow(db, registry)

def get_user_workflow(db: Session = Depends(get_db)) -> UserWorkflow:
    return UserWorkflow(db)


# --- Monitoring endpoints ---

@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.get("/health", tags=["Monitoring"])
def health_check():
    """Checks that the service is up and the database answers."""
    if SessionLocal is None:
        raise HTTPException(status_code=503, detail="Database connection error: not initialised")
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed - database error: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail=f"Database connection error: {e}")
    finally:
        db.close()
    return {"status": "ok", "service": "company_service", "database": "ok"}


# --- Company endpoints ---

@app.get("/companies", response_model=List[schemas.CompanyResponse], tags=["Companies"])
def list_companies(workflow: CompanyWorkflow = Depends(get_company_workflow)):
    """Returns every company with its users nested as summaries."""
    return [schemas.CompanyResponse.model_validate(company) for company in workflow.list()]

@app.get("/companies/{company_id}", response_model=schemas.CompanyResponse, tags=["Companies"])
def get_company(company_id: int, workflow: CompanyWorkflow = Depends(get_company_workflow)):
    """
    Returns one company by id.
    Example: GET /companies/1
    """
    return schemas.CompanyResponse.model_validate(workflow.get(company_id))

@app.post(
    "/companies",
    response_model=schemas.CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Companies"],
    responses={400: {"description": "Tax ID invalid or not found"}, 503: {"description": "Registry unavailable"}},
)
async def create_company(
    company_in: schemas.CompanyCreate,
    response: Response,
    workflow: CompanyWorkflow = Depends(get_company_workflow),
):
    """
    Registers a new company.
    The tax id is looked up in the registry first; the company is only stored
    when the registry echoes the tax id back.
    """
    logger.info(f"Company creation attempt for tax id: {company_in.tax_id}")
    try:
        company = await workflow.create(company_in)
    except ValidationRejected:
        REGISTRY_REJECTED_COUNT.labels(reason="not_found").inc()
        raise
    except RegistryUnavailable:
        REGISTRY_REJECTED_COUNT.labels(reason="unavailable").inc()
        raise

    COMPANY_CREATED_COUNT.inc()
    response.headers["Location"] = f"/companies/{company.id}"
    return schemas.CompanyResponse.model_validate(company)

@app.put("/companies", response_model=schemas.CompanyResponse, tags=["Companies"])
def update_company(company_in: schemas.CompanyUpdate, workflow: CompanyWorkflow = Depends(get_company_workflow)):
    """Replaces the fields of the company identified by the body id. The registry is not consulted again."""
    return schemas.CompanyResponse.model_validate(workflow.update(None, company_in))

@app.put(
    "/companies/{company_id}",
    response_model=schemas.CompanyResponse,
    tags=["Companies"],
    responses={400: {"description": "Path id and body id differ"}, 404: {"description": "Company not found"}},
)
def update_company_by_id(
    company_id: int,
    company_in: schemas.CompanyUpdate,
    workflow: CompanyWorkflow = Depends(get_company_workflow),
):
    """Same as PUT /companies, but the path id must match the body id."""
    return schemas.CompanyResponse.model_validate(workflow.update(company_id, company_in))

@app.delete("/companies/{company_id}", response_model=schemas.CompanyDeleteResponse, tags=["Companies"])
def delete_company(company_id: int, workflow: CompanyWorkflow = Depends(get_company_workflow)):
    """Deletes a company and every user that belongs to it, atomically."""
    removed_users = workflow.delete(company_id)
    CASCADE_DELETED_USERS.inc(removed_users)
    return schemas.CompanyDeleteResponse(id=company_id, removed_users=removed_users)


# --- User endpoints ---

@app.get("/users", response_model=List[schemas.UserResponse], tags=["Users"])
def list_users(workflow: UserWorkflow = Depends(get_user_workflow)):
    """Returns every user with the legal name of its company."""
    return [schemas.UserResponse.from_row(user, legal_name) for user, legal_name in workflow.list()]

@app.get("/users/{user_id}", response_model=schemas.UserResponse, tags=["Users"])
def get_user(user_id: int, workflow: UserWorkflow = Depends(get_user_workflow)):
    user, legal_name = workflow.get(user_id)
    return schemas.UserResponse.from_row(user, legal_name)

@app.post(
    "/users",
    response_model=schemas.UserResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
    responses={400: {"description": "Company not found"}},
)
def create_user(
    user_in: schemas.UserCreate,
    response: Response,
    workflow: UserWorkflow = Depends(get_user_workflow),
):
    """
    Creates a user inside an existing company.
    The password is stored hashed and never returned.
    """
    logger.info(f"User creation attempt for username {user_in.username} in company {user_in.company_id}")
    user, legal_name = workflow.create(user_in)
    USER_CREATED_COUNT.inc()
    response.headers["Location"] = f"/users/{user.id}"
    return schemas.UserResponse.from_row(user, legal_name)

@app.put("/users", response_model=schemas.UserResponse, tags=["Users"], responses={409: {"description": "Company reference rejected"}})
def update_user(user_in: schemas.UserUpdate, workflow: UserWorkflow = Depends(get_user_workflow)):
    """Replaces the fields of the user identified by the body id."""
    user, legal_name = workflow.update(None, user_in)
    return schemas.UserResponse.from_row(user, legal_name)

@app.put("/users/{user_id}", response_model=schemas.UserResponse, tags=["Users"])
def update_user_by_id(user_id: int, user_in: schemas.UserUpdate, workflow: UserWorkflow = Depends(get_user_workflow)):
    user, legal_name = workflow.update(user_id, user_in)
    return schemas.UserResponse.from_row(user, legal_name)

@app.delete("/users/{user_id}", response_model=schemas.UserDeleteResponse, tags=["Users"])
def delete_user(user_id: int, workflow: UserWorkflow = Depends(get_user_workflow)):
    workflow.delete(user_id)
    return schemas.UserDeleteResponse(id=user_id)
