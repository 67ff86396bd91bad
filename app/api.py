"""
FastAPI routes for statement upload, analysis history and the dashboard.
Every failure is returned as a single-field {"error": ...} object.
"""
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response

from core.config import get_settings
from core.exceptions import StatementAnalyzerError
from core.logger import setup_logger
from core.parsing import validate_file_extension
from services.analysis_service import StatementAnalysisService

logger = setup_logger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Bank Statement Analyzer",
    description="Summarize bank statements into categorized income and expenses",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[StatementAnalysisService] = None


def get_service() -> StatementAnalysisService:
    """Service singleton, overridable in tests."""
    global _service
    if _service is None:
        _service = StatementAnalysisService(get_settings())
    return _service


@app.exception_handler(StatementAnalyzerError)
async def analyzer_error_handler(request: Request, exc: StatementAnalyzerError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}", extra={"details": exc.details})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "statement_analyzer",
        "version": "1.0.0"
    }


@app.get("/favicon.ico")
async def favicon():
    """Return empty response for favicon to avoid 404 errors."""
    return Response(status_code=204)


@app.post("/api/analyze")
async def analyze_statement(
    statement: Optional[UploadFile] = File(None),
    account_name: Optional[str] = Form(None, alias="accountName"),
    service: StatementAnalysisService = Depends(get_service),
):
    """
    Analyze an uploaded bank statement.

    Args:
        statement: PDF statement file
        account_name: Account label the statement belongs to

    Returns:
        Canonical analysis result
    """
    content = None
    filename = None
    if statement is not None:
        filename = statement.filename
        logger.info(f"Received file: {filename}")
        validate_file_extension(filename)
        content = await statement.read()

    result = await service.analyze(content, filename, account_name)
    return result.to_wire()


@app.get("/api/history")
async def get_history(
    account: Optional[str] = None,
    service: StatementAnalysisService = Depends(get_service),
):
    """Stored analyses newest first."""
    records = await service.history(account)
    return [record.to_wire() for record in records]


@app.get("/api/history/export")
async def export_history(
    account: Optional[str] = None,
    service: StatementAnalysisService = Depends(get_service),
):
    """Download the history as an Excel workbook."""
    output_path = await service.export_history(account)
    return FileResponse(
        path=output_path,
        filename=Path(output_path).name,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )


@app.delete("/api/history/{analysis_id}")
async def delete_analysis(
    analysis_id: str,
    service: StatementAnalysisService = Depends(get_service),
):
    """Delete a stored analysis."""
    await service.delete(analysis_id)
    return {"success": True, "id": analysis_id}


@app.get("/api/accounts")
async def list_accounts(service: StatementAnalysisService = Depends(get_service)):
    """Account labels with the all-accounts entry first."""
    return {"accounts": await service.accounts()}


@app.get("/api/dashboard")
async def get_dashboard(
    account: Optional[str] = None,
    service: StatementAnalysisService = Depends(get_service),
):
    """Trend series and period-over-period deltas."""
    view = await service.dashboard(account)
    return view.to_wire()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
