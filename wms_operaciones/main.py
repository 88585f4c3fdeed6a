# wms_operaciones/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import contextlib
import logging

from wms_operaciones import config
from wms_operaciones import database as db
from wms_operaciones.exceptions import (
    WMSBaseException,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    OverQuantityError,
    AlreadyChainedError,
    PermissionDeniedError,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("--- Servidor iniciando, creando pool de conexiones... ---")
    try:
        db.init_db_pool()
        logger.info("--- Pool de conexiones a Base de Datos creado. ---")
    except Exception:
        logger.exception("!!! ERROR FATAL DURANTE EL INICIO")

    yield

    db.close_db_pool()
    logger.info("--- Servidor apagándose. ---")


app = FastAPI(
    title="WMS Operaciones API",
    description="Operaciones de almacén multietapa: Recepción -> QC -> Almacenamiento | Picking -> Empaque -> Envío.",
    lifespan=lifespan
)

# --- Mapeo de errores de negocio a HTTP ---
STATUS_BY_EXCEPTION = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (OverQuantityError, status.HTTP_409_CONFLICT),
    (AlreadyChainedError, status.HTTP_409_CONFLICT),
)


@app.exception_handler(WMSBaseException)
async def wms_exception_handler(request: Request, exc: WMSBaseException):
    status_code = status.HTTP_400_BAD_REQUEST
    for exc_type, code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            status_code = code
            break
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Error no controlado en %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": f"Error interno: {exc}"})


from wms_operaciones.api import operaciones
app.include_router(operaciones.router, prefix="/operaciones", tags=["Operaciones de Almacén"])


@app.get("/")
async def read_root():
    return {"message": "Bienvenido a la API de Operaciones de Almacén"}
