import asyncio
import math
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Request, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from resumerefresh import __version__
from resumerefresh.core.errors import CompositionError, PersistenceFailure, ValidationFailed
from resumerefresh.core.recipient import DispatchRequest
from resumerefresh.core.submission import FORM_CONTRACT, FormFields, SubmissionMetadata, SubmissionSource
from resumerefresh.email.email_templates import AMP_SUBMIT_PATH, FORM_PATH
from resumerefresh.email.mail_channel import MailChannel, SMTPConnectionPool
from resumerefresh.email.refresh_service import ResumeRefreshService, create_refresh_service
from resumerefresh.submissions.gateway import InboundRequest, SubmissionGateway, SOURCE_ORIGIN_PARAM
from resumerefresh.utils.config import Settings, get_settings
from resumerefresh.utils.database import Database
from resumerefresh.utils.logger import configure_from_settings, get_logger, memory_handler
from resumerefresh.utils.rate_limit import RateLimiter

logger = get_logger("api")

DASHBOARD_DIR = Path(__file__).parent
templates = Jinja2Templates(directory=DASHBOARD_DIR / "templates")


class SendTestRequest(BaseModel):
    to: str
    applicant_name: str = Field(default="Test User", alias="applicantName")
    job_title: str = Field(default="Software Engineer", alias="jobTitle")
    company_name: Optional[str] = Field(default=None, alias="companyName")

    class Config:
        populate_by_name = True


class BulkRecipient(BaseModel):
    email: str
    name: str = "Applicant"
    job_title: str = Field(default="Position", alias="jobTitle")

    class Config:
        populate_by_name = True


class BulkSendRequest(BaseModel):
    emails: list[BulkRecipient] = Field(..., min_length=1)
    company_name: Optional[str] = Field(default=None, alias="companyName")

    class Config:
        populate_by_name = True


class AppServices:
    """Collaborators shared by the routes. The store is opened on first use."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[Database] = None,
        mail_channel: Optional[MailChannel] = None,
    ):
        self.settings = settings
        self._store = store
        self._gateway: Optional[SubmissionGateway] = None
        self.mail_channel = mail_channel
        self.refresh_service: Optional[ResumeRefreshService] = (
            create_refresh_service(settings, mail_channel) if mail_channel else None
        )

    @property
    def store(self) -> Database:
        if self._store is None:
            self._store = Database(
                db_path=self.settings.database.path,
                echo=self.settings.database.echo,
            )
        return self._store

    @property
    def gateway(self) -> SubmissionGateway:
        if self._gateway is None:
            self._gateway = SubmissionGateway.from_settings(self.settings, self.store)
        return self._gateway

    def require_sender(self) -> ResumeRefreshService:
        if self.refresh_service is None:
            raise HTTPException(
                status_code=503,
                detail="SMTP not configured. Set SMTP_USER and SMTP_PASSWORD in .env",
            )
        return self.refresh_service


async def read_payload(request: Request) -> dict[str, Any]:
    """JSON, urlencoded or multipart body as a flat dict; skills always a list."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    form = await request.form()
    payload: dict[str, Any] = {}
    for key in form.keys():
        values = [v for v in form.getlist(key) if isinstance(v, str)]
        if key == FormFields.SKILLS:
            payload[key] = values
        elif values:
            payload[key] = values[-1]
    return payload


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Database] = None,
    mail_channel: Optional[MailChannel] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_from_settings(settings)

    if mail_channel is None and settings.mail_configured:
        mail_channel = SMTPConnectionPool.from_settings(settings)

    services = AppServices(settings, store=store, mail_channel=mail_channel)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services.mail_channel is not None:
            await services.mail_channel.open()
        else:
            logger.warning("   ⚠️ SMTP not configured. Set SMTP_USER and SMTP_PASSWORD in .env")
        yield
        if services.mail_channel is not None:
            await services.mail_channel.close()

    app = FastAPI(title="Resume Refresh API", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.state.rate_limiter = RateLimiter.from_settings(settings) if settings.rate_limit.enabled else None

    @app.middleware("http")
    async def limit_requests(request: Request, call_next):
        limiter = app.state.rate_limiter
        if limiter is None:
            return await call_next(request)

        client = _client_ip(request)
        retry_after = limiter.hit(client)
        if retry_after:
            logger.warning(f"   🚦 Rate limit exceeded for {client}")
            return JSONResponse(
                {"error": "Too many requests from this IP, please try again later."},
                status_code=429,
                headers={"Retry-After": str(math.ceil(retry_after))},
            )
        return await call_next(request)

    # ============ General ============

    @app.get("/")
    async def index():
        return {
            "message": "AMP Email Backend API",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "ampSubmit": AMP_SUBMIT_PATH,
                "submissions": "/api/amp/submissions",
                "webForm": FORM_PATH,
                "testEmail": "/api/test/send-test",
                "testConnection": "/api/test/test-connection",
                "bulkSend": "/api/admin/send-bulk",
                "stats": "/api/admin/stats",
            },
        }

    @app.get("/health")
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now().isoformat(),
            "environment": settings.environment,
            "serverUrl": settings.server_url,
            "mailConfigured": services.mail_channel is not None,
        }

    # ============ AMP ============

    @app.api_route(AMP_SUBMIT_PATH, methods=["POST", "OPTIONS"])
    async def amp_submit(request: Request):
        payload = await read_payload(request) if request.method == "POST" else {}

        inbound = InboundRequest(
            method=request.method,
            origin=request.headers.get("origin"),
            source_origin=request.query_params.get(SOURCE_ORIGIN_PARAM),
            payload=payload,
            user_agent=request.headers.get("user-agent", ""),
            ip_address=_client_ip(request),
            referrer=request.headers.get("referer"),
        )
        result = await services.gateway.handle(inbound)

        if result.body is None:
            return Response(status_code=result.status_code, headers=result.headers)
        return JSONResponse(result.body, status_code=result.status_code, headers=result.headers)

    @app.get("/api/amp/submissions")
    async def list_submissions(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        email: Optional[str] = None,
    ):
        cors = {"Access-Control-Allow-Origin": "*", "Access-Control-Allow-Methods": "GET"}
        try:
            records = await asyncio.to_thread(services.store.list_submissions, page, limit, email)
            total = await asyncio.to_thread(services.store.count_submissions, email)
        except PersistenceFailure as e:
            logger.error(f"   ❌ Error fetching submissions: {e}")
            return JSONResponse(
                {"success": False, "error": "Failed to fetch submissions"},
                status_code=500,
                headers=cors,
            )

        return JSONResponse(
            {
                "success": True,
                "data": {
                    "submissions": [r.to_summary() for r in records],
                    "pagination": {
                        "current": page,
                        "pages": math.ceil(total / limit),
                        "total": total,
                    },
                },
            },
            headers=cors,
        )

    # ============ Hosted form ============

    @app.get(FORM_PATH, response_class=HTMLResponse)
    async def resume_form(
        request: Request,
        email: str = "",
        name: str = "",
        job: str = "",
        company: str = "",
    ):
        return templates.TemplateResponse(
            request,
            "resume_form.html",
            {
                "contract": FORM_CONTRACT,
                "fields": FORM_CONTRACT.fields,
                "company_name": company or settings.default_company,
                "action_url": FORM_PATH,
                "prefill": {"email": email, "applicant_name": name, "job_title": job},
            },
        )

    @app.post(FORM_PATH, response_class=HTMLResponse)
    async def submit_resume_form(request: Request):
        payload = await read_payload(request)
        company_name = payload.get(FormFields.COMPANY_NAME) or settings.default_company

        metadata = SubmissionMetadata(
            user_agent=request.headers.get("user-agent", ""),
            ip_address=_client_ip(request),
            source=SubmissionSource.WEB_FORM,
            referrer=request.headers.get("referer"),
        )

        try:
            record = await services.gateway.accept(payload, metadata)
        except ValidationFailed as e:
            logger.warning(f"   ❌ Web form validation error: {e}")
            return templates.TemplateResponse(
                request, "error.html", {"message": str(e), "company_name": company_name}, status_code=400
            )
        except PersistenceFailure as e:
            logger.error(f"   ❌ Error storing web form submission: {e}")
            return templates.TemplateResponse(
                request,
                "error.html",
                {"message": "Failed to process submission. Please try again.", "company_name": company_name},
                status_code=500,
            )

        logger.info(f"   📝 Stored resume update {record.id} via web form")
        return templates.TemplateResponse(
            request, "success.html", {"record": record, "company_name": company_name}
        )

    # ============ Test ============

    @app.post("/api/test/send-test")
    async def send_test(body: SendTestRequest):
        service = services.require_sender()
        request = DispatchRequest(
            recipient=body.to,
            applicant_name=body.applicant_name,
            job_title=body.job_title,
            company_name=body.company_name,
        )

        try:
            result = await service.send_refresh_email(request)
        except CompositionError as e:
            raise HTTPException(status_code=400, detail=str(e))

        data = result.model_dump(mode="json")
        if not result.success:
            return JSONResponse(
                {
                    "success": False,
                    "error": "Failed to send test email",
                    "details": result.error_message,
                    "data": data,
                },
                status_code=502,
            )
        return {"success": True, "message": "Test email sent successfully", "data": data}

    @app.get("/api/test/test-connection")
    async def test_connection():
        if services.refresh_service is None:
            return {"success": False, "message": "SMTP not configured. Set SMTP_USER and SMTP_PASSWORD in .env"}
        return await services.refresh_service.dispatcher.test_connection()

    # ============ Admin ============

    @app.post("/api/admin/send-bulk")
    async def send_bulk(body: BulkSendRequest):
        service = services.require_sender()
        requests = [
            DispatchRequest(
                recipient=item.email,
                applicant_name=item.name,
                job_title=item.job_title,
                company_name=body.company_name,
            )
            for item in body.emails
        ]

        stats = await service.send_batch(requests, delay_seconds=settings.bulk_delay_seconds)
        return {
            "success": True,
            "message": f"Processed {stats['total']} emails",
            "sent": stats["sent"],
            "failed": stats["failed"],
            "results": stats["results"],
        }

    @app.get("/api/admin/stats")
    async def get_stats():
        try:
            return await asyncio.to_thread(services.store.get_stats)
        except PersistenceFailure as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/admin/logs")
    async def get_logs(lines: int = Query(100, ge=1, le=1000)):
        return {"logs": memory_handler.get_logs(lines)}

    return app


app = create_app()


def run_dashboard(host: str = "127.0.0.1", port: Optional[int] = None):
    import uvicorn
    port = port or get_settings().port
    print(f"\n🚀 Starting Resume Refresh API at http://{host}:{port}\n")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_dashboard()
