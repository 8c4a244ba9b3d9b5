import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from io import BytesIO
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config import Settings, get_settings
from controller import SessionController
from database import get_storage
from errors import InvalidTransition, NotFound, PersistenceFailure, ValidationError
from gatepass_store import GatePassStore
from logging_config import configure_logging
from schemas import (
    ApplyFormInput,
    DeclineRequest,
    LoginRequest,
    Location,
    OpenApplyRequest,
    RoleSelectRequest,
    TextInputRequest,
)
from suggestions import PlaceSuggestionClient

logger = logging.getLogger(__name__)


# -----------------------------
# Wiring
# -----------------------------

def build_controller(settings: Settings) -> SessionController:
    store = GatePassStore(get_storage(settings))
    try:
        store.load()
    except PersistenceFailure:
        logger.exception("Could not load saved applications, starting with an empty list")
    suggestions = PlaceSuggestionClient(api_key=settings.GEMINI_API_KEY, model=settings.SUGGESTION_MODEL)
    return SessionController(store, suggestions, settings)


def reported_position(position: Location):
    async def locate() -> Location:
        return position
    return locate


async def run_clock(controller: SessionController, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        controller.tick()


def create_app(settings: Optional[Settings] = None,
               controller: Optional[SessionController] = None) -> FastAPI:
    settings = settings or get_settings()
    controller = controller or build_controller(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()
        splash_timer = loop.call_later(settings.SPLASH_SECONDS, controller.finish_splash)
        clock_task = asyncio.create_task(run_clock(controller, settings.CLOCK_INTERVAL_SECONDS))
        try:
            yield
        finally:
            splash_timer.cancel()
            clock_task.cancel()
            with suppress(asyncio.CancelledError):
                await clock_task

    app = FastAPI(title="Campus Gate Pass Portal", lifespan=lifespan)
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------
    # Error handlers
    # -----------------------------

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})

    @app.exception_handler(InvalidTransition)
    async def _invalid_transition(request: Request, exc: InvalidTransition):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def view():
        controller.tick()
        return controller.view()

    # -----------------------------
    # Routes
    # -----------------------------

    @app.get("/")
    def root():
        return {"message": "Campus Gate Pass Portal", "status": "ok"}

    @app.get("/test")
    def test_storage():
        store = controller.store
        return {
            "backend": "✅ Running",
            "storage": store.backend,
            "storage_key": settings.STORAGE_KEY,
            "applications": store.stats(),
            "last_persistence_error": store.last_persistence_error,
        }

    @app.get("/api/view")
    def get_view():
        return view()

    # 1) Role select, login / signup
    @app.post("/api/role")
    def select_role(req: RoleSelectRequest):
        controller.select_role(req.role)
        return view()

    @app.post("/api/auth/toggle")
    def toggle_auth_mode():
        controller.toggle_auth_mode()
        return view()

    @app.post("/api/phone")
    def type_phone(req: TextInputRequest):
        controller.type_phone(req.value)
        return view()

    @app.post("/api/login")
    def login(req: LoginRequest):
        controller.login(phone=req.phone, password=req.password)
        return view()

    @app.post("/api/reset")
    def reset():
        controller.reset()
        return view()

    # 2) Student: apply
    @app.post("/api/apply/open")
    async def open_apply(req: Optional[OpenApplyRequest] = None):
        # The browser reports its position (or nothing, on denial) with the request
        locate = None
        if req and req.latitude is not None and req.longitude is not None:
            locate = reported_position(Location(latitude=req.latitude, longitude=req.longitude))
        await controller.open_apply(locate)
        return view()

    @app.post("/api/apply/destination")
    async def type_destination(req: TextInputRequest):
        await controller.type_destination(req.value)
        return view()

    @app.post("/api/apply/destination/pick")
    def pick_suggestion(req: TextInputRequest):
        controller.pick_suggestion(req.value)
        return view()

    @app.post("/api/apply")
    def submit_application(req: ApplyFormInput):
        record = controller.submit_application(req)
        return {"message": "Request submitted", "application_id": record.id, "view": view()}

    # 3) Listing / details
    @app.post("/api/applications/{app_id}/open")
    def open_details(app_id: str):
        controller.open_details(app_id)
        return view()

    @app.post("/api/back")
    def back():
        controller.back()
        return view()

    @app.get("/api/details/certificate")
    def download_certificate():
        filename, pdf = controller.download_certificate()
        return StreamingResponse(
            BytesIO(pdf),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # 4) Authority
    @app.post("/api/details/approve")
    def approve():
        record = controller.approve()
        return {"message": "Request approved", "gate_pass_number": record.gate_pass_number, "view": view()}

    @app.post("/api/details/decline/start")
    def start_decline():
        controller.start_decline()
        return view()

    @app.post("/api/details/decline/reason")
    def type_decline_reason(req: TextInputRequest):
        controller.type_decline_reason(req.value)
        return view()

    @app.post("/api/details/decline/cancel")
    def cancel_decline():
        controller.cancel_decline()
        return view()

    @app.post("/api/details/decline")
    def confirm_decline(req: Optional[DeclineRequest] = None):
        controller.confirm_decline(req.reason if req else None)
        return {"message": "Request declined", "view": view()}

    # 5) Security
    @app.post("/api/details/exit")
    def record_exit():
        record = controller.record_exit()
        return {"message": "Exit recorded", "out_time": record.out_time, "view": view()}

    @app.post("/api/details/entry")
    def record_entry():
        record = controller.record_entry()
        return {"message": "Entry recorded", "in_time": record.in_time, "view": view()}

    return app


_settings = get_settings()
configure_logging(_settings.LOG_LEVEL, _settings.LOG_FORMAT)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", _settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
