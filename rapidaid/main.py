"""
main.py
=======
FastAPI entry point for the RapidAid dispatch backend.
It:
 - Builds the store (SQL or in-memory) and the dispatch policy.
 - Initializes the database tables on startup.
 - Exposes REST endpoints for patients, drivers and admins.

Caller identity arrives in the X-User-Id header; token verification is
handled by the gateway in front of this service.
"""

from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import accounts, assignment, dashboard, drivers, emergencies, matching, stats
from .config import CORS_ORIGINS, DB_PATH, STORE_BACKEND, DispatchPolicy
from .db import init_db
from .errors import DispatchError
from .schemas import (
    DashboardMetrics, DriverStats, DriverStatsCreate, DutyToggleRequest, Emergency, EmergencyCreate,
    LiveLocation, LocationUpdate, RegisterRequest, UserProfile, UserRole,
)
from .sql_store import SqlStore
from .store import DispatchStore, make_store


# ---------------------------------------------------------------------------
# DEPENDENCIES
# ---------------------------------------------------------------------------

def get_store(request: Request) -> DispatchStore:
    return request.app.state.store


def get_policy(request: Request) -> DispatchPolicy:
    return request.app.state.policy


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    store: DispatchStore = Depends(get_store),
) -> UserProfile:
    """Resolve the calling user from the X-User-Id header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="No user identity provided")
    user = await store.get_user(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_role(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.
    Example: Depends(require_role(UserRole.driver))
    """
    async def role_checker(user: UserProfile = Depends(get_current_user)) -> UserProfile:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return role_checker


require_patient = require_role(UserRole.patient)
require_driver = require_role(UserRole.driver)
require_admin = require_role(UserRole.admin)


# ---------------------------------------------------------------------------
# APP FACTORY
# ---------------------------------------------------------------------------

def create_app(store: Optional[DispatchStore] = None, policy: Optional[DispatchPolicy] = None) -> FastAPI:
    """
    Build the API around an explicit store and policy.
    Tests pass a MemoryStore; the module-level app uses RAPIDAID_STORE.
    """
    app = FastAPI(title="RapidAid Dispatch Backend", version="1.0")
    app.state.store = store or make_store(STORE_BACKEND, DB_PATH)
    app.state.policy = policy or DispatchPolicy.from_env()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.on_event("startup")
    async def startup_event():
        """Create tables for the SQL store; the memory store needs nothing."""
        print("🚀 Starting RapidAid dispatch backend...")
        if isinstance(app.state.store, SqlStore):
            init_db(app.state.store.session_factory)
        print(f"⚙️ Store: {type(app.state.store).__name__}, policy: {app.state.policy}")

    _register_routes(app)
    return app


def _register_routes(app: FastAPI):

    # -----------------------------------------------------------------------
    # HEALTH / AUTH
    # -----------------------------------------------------------------------

    @app.get("/")
    def root():
        """Basic health check endpoint."""
        return {"message": "RapidAid dispatch backend is running!"}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/auth/register", response_model=UserProfile, status_code=201)
    async def api_register(req: RegisterRequest, store: DispatchStore = Depends(get_store)):
        """Create a patient, driver or admin profile."""
        return await accounts.register_user(store, req)

    @app.get("/api/auth/me", response_model=UserProfile)
    async def api_me(user: UserProfile = Depends(get_current_user)):
        return user

    # -----------------------------------------------------------------------
    # PATIENT ENDPOINTS
    # -----------------------------------------------------------------------

    @app.post("/api/patient/emergency", response_model=Emergency, status_code=201)
    async def api_create_emergency(
        req: EmergencyCreate,
        user: UserProfile = Depends(require_patient),
        store: DispatchStore = Depends(get_store),
    ):
        """Raise a new emergency. It starts out pending."""
        return await emergencies.create_emergency(store, user.id, req)

    @app.get("/api/patient/emergency", response_model=Optional[Emergency])
    async def api_my_emergency(
        user: UserProfile = Depends(require_patient),
        store: DispatchStore = Depends(get_store),
    ):
        """The caller's active emergency, or null."""
        return await emergencies.get_patient_emergency(store, user.id)

    @app.get("/api/patient/emergency/driver", response_model=Optional[UserProfile])
    async def api_my_driver(
        user: UserProfile = Depends(require_patient),
        store: DispatchStore = Depends(get_store),
    ):
        """Driver bound to the caller's active emergency, or null if none yet."""
        emergency = await emergencies.get_patient_emergency(store, user.id)
        if emergency is None:
            raise HTTPException(status_code=404, detail="No active emergency")
        return await emergencies.get_assigned_driver(store, emergency.id)

    # -----------------------------------------------------------------------
    # DRIVER ENDPOINTS
    # -----------------------------------------------------------------------

    @app.post("/api/driver/duty/toggle")
    async def api_toggle_duty(
        req: DutyToggleRequest,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        driver = await drivers.toggle_duty(store, user.id, req.is_on_duty)
        return {"isOnDuty": driver.is_on_duty, "message": "Duty status updated"}

    @app.post("/api/driver/location", response_model=LiveLocation)
    async def api_update_location(
        req: LocationUpdate,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        return await drivers.update_location(store, user.id, req.latitude, req.longitude)

    @app.get("/api/driver/location/current", response_model=Optional[LiveLocation])
    async def api_current_location(
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        return await drivers.get_current_location(store, user.id)

    @app.get("/api/driver/requests/pending", response_model=List[Emergency])
    async def api_pending_requests(
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
        policy: DispatchPolicy = Depends(get_policy),
    ):
        """Pending emergencies with distance / ETA / route from the caller's position."""
        return await matching.get_pending_requests(store, user.id, policy)

    @app.get("/api/driver/requests/assigned", response_model=List[Emergency])
    async def api_assigned_requests(
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
        policy: DispatchPolicy = Depends(get_policy),
    ):
        return await matching.get_assigned_requests(store, user.id, policy)

    @app.post("/api/driver/requests/{emergency_id}/accept", response_model=Emergency)
    async def api_accept(
        emergency_id: str,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        """Claim a pending emergency. 409 if another driver got there first."""
        return await assignment.accept(store, emergency_id, user.id)

    @app.post("/api/driver/requests/{emergency_id}/reject", response_model=Emergency)
    async def api_reject(
        emergency_id: str,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
        policy: DispatchPolicy = Depends(get_policy),
    ):
        return await assignment.reject(store, emergency_id, user.id, policy)

    @app.post("/api/driver/requests/{emergency_id}/complete", response_model=Emergency)
    async def api_complete(
        emergency_id: str,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
        policy: DispatchPolicy = Depends(get_policy),
    ):
        return await assignment.complete(store, emergency_id, user.id, policy)

    @app.get("/api/driver/stats", response_model=DriverStats)
    async def api_get_stats(
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        return await stats.get_stats(store, user.id)

    @app.post("/api/driver/stats", response_model=DriverStats, status_code=201)
    async def api_create_stats(
        req: DriverStatsCreate,
        user: UserProfile = Depends(require_driver),
        store: DispatchStore = Depends(get_store),
    ):
        """Create the caller's stats record. Drivers may only create their own."""
        if req.driver_id and req.driver_id != user.id:
            raise HTTPException(status_code=403, detail="Unauthorized to create stats for this driver")
        fields = req.model_dump(exclude={"driver_id"})
        return await stats.create_stats(store, user.id, fields)

    # -----------------------------------------------------------------------
    # ADMIN ENDPOINTS
    # -----------------------------------------------------------------------

    @app.get("/api/admin/drivers", response_model=List[UserProfile])
    async def api_admin_drivers(
        user: UserProfile = Depends(require_admin),
        store: DispatchStore = Depends(get_store),
    ):
        return await store.get_users_by_role(UserRole.driver)

    @app.get("/api/admin/patients", response_model=List[UserProfile])
    async def api_admin_patients(
        user: UserProfile = Depends(require_admin),
        store: DispatchStore = Depends(get_store),
    ):
        return await store.get_users_by_role(UserRole.patient)

    @app.get("/api/admin/emergencies", response_model=List[Emergency])
    async def api_admin_emergencies(
        user: UserProfile = Depends(require_admin),
        store: DispatchStore = Depends(get_store),
    ):
        """Every emergency, newest first."""
        return await store.get_all_emergencies()

    @app.get("/api/admin/dashboard/metrics", response_model=DashboardMetrics)
    async def api_dashboard_metrics(
        user: UserProfile = Depends(require_admin),
        store: DispatchStore = Depends(get_store),
    ):
        return await dashboard.get_dashboard_metrics(store)


app = create_app()
