# wms_operaciones/api/operaciones.py
from fastapi import APIRouter, Depends, Query, status
from typing import List, Annotated, Optional
import asyncio

from wms_operaciones import schemas, security
from wms_operaciones.database.store import PostgresStore
from wms_operaciones.security import TokenData
from wms_operaciones.services import (
    OperationService, ItemService, AssignmentService, AggregationService
)

router = APIRouter()
AuthDependency = Annotated[TokenData, Depends(security.get_current_user_data)]


def get_store():
    return PostgresStore()

StoreDependency = Annotated[object, Depends(get_store)]


# --- Tablero (lecturas agregadas) ---

@router.get("/pendientes/{sucursal_id}")
async def get_pendientes(sucursal_id: int, auth: AuthDependency, store: StoreDependency):
    """Operaciones no terminales de la sucursal y conteo por tipo."""
    security.require_permission(auth, security.PERM_VIEW)
    return await asyncio.to_thread(AggregationService(store).obtener_pendientes, sucursal_id)

@router.get("/estadisticas/{sucursal_id}")
async def get_estadisticas(sucursal_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_VIEW)
    return await asyncio.to_thread(AggregationService(store).obtener_estadisticas, sucursal_id)

@router.get("/kanban/{sucursal_id}")
async def get_kanban(sucursal_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_VIEW)
    return await asyncio.to_thread(AggregationService(store).obtener_resumen_kanban, sucursal_id)

# --- Items ---

@router.post("/items/{item_id}/procesar", response_model=schemas.OperacionItemResponse)
async def procesar_item(item_id: int, data: schemas.ProcesarItemRequest,
                        auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_PROCESS)
    return await asyncio.to_thread(
        ItemService(store).procesar_item,
        item_id, data.cantidad_procesada, data.ubicacion_destino_id, auth.user_id
    )

@router.post("/items/{item_id}/cancelar", response_model=schemas.OperacionItemResponse)
async def cancelar_item(item_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_PROCESS)
    return await asyncio.to_thread(ItemService(store).cancelar_item, item_id)

# --- Operaciones ---

@router.get("/", response_model=List[schemas.OperacionResponse])
async def listar_operaciones(
    auth: AuthDependency, store: StoreDependency,
    sucursal_id: Optional[int] = Query(None), tipo_operacion: Optional[str] = Query(None),
    estado: Optional[str] = Query(None), estados: Optional[List[str]] = Query(None),
    asignado_a: Optional[int] = Query(None), origen_tipo: Optional[str] = Query(None),
    origen_id: Optional[int] = Query(None), skip: int = 0, limit: int = 50
):
    security.require_permission(auth, security.PERM_VIEW)
    filtros = {
        "sucursal_id": sucursal_id, "tipo_operacion": tipo_operacion, "estado": estado,
        "estados": estados, "asignado_a": asignado_a, "origen_tipo": origen_tipo,
        "origen_id": origen_id, "limit": limit, "offset": skip,
    }
    return await asyncio.to_thread(OperationService(store).listar, filtros)

@router.post("/", response_model=schemas.OperacionDetalleResponse, status_code=status.HTTP_201_CREATED)
async def crear_operacion(data: schemas.OperacionCreate, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_EDIT)
    cabecera = data.model_dump(exclude={"tipo_operacion", "sucursal_id", "origen_tipo", "origen_id", "items"},
                               exclude_none=True)
    return await asyncio.to_thread(
        OperationService(store).crear,
        data.tipo_operacion, data.sucursal_id, [i.model_dump() for i in data.items],
        origen_tipo=data.origen_tipo, origen_id=data.origen_id, creado_por=auth.user_id,
        **cabecera
    )

@router.get("/{operacion_id}", response_model=schemas.OperacionDetalleResponse)
async def get_operacion(operacion_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_VIEW)
    return await asyncio.to_thread(OperationService(store).obtener_por_id, operacion_id)

@router.get("/{operacion_id}/cadena", response_model=List[schemas.OperacionResponse])
async def get_cadena(operacion_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_VIEW)
    return await asyncio.to_thread(OperationService(store).obtener_cadena, operacion_id)

@router.put("/{operacion_id}", response_model=schemas.OperacionDetalleResponse)
async def actualizar_operacion(operacion_id: int, data: schemas.OperacionUpdate,
                               auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_EDIT)
    return await asyncio.to_thread(
        OperationService(store).actualizar, operacion_id, data.model_dump(exclude_unset=True)
    )

@router.post("/{operacion_id}/asignar", response_model=schemas.OperacionDetalleResponse)
async def asignar_operacion(operacion_id: int, data: schemas.AsignarRequest,
                            auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_ASSIGN)
    return await asyncio.to_thread(AssignmentService(store).asignar, operacion_id, data.usuario_id)

@router.post("/{operacion_id}/iniciar", response_model=schemas.OperacionDetalleResponse)
async def iniciar_operacion(operacion_id: int, auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_PROCESS)
    return await asyncio.to_thread(OperationService(store).iniciar, operacion_id, auth.user_id)

@router.post("/{operacion_id}/items/procesar", response_model=List[schemas.ProcesarLoteResultado])
async def procesar_items(operacion_id: int, data: schemas.ProcesarLoteRequest,
                         auth: AuthDependency, store: StoreDependency):
    """Procesa varias líneas; el resultado es por item, no todo-o-nada."""
    security.require_permission(auth, security.PERM_PROCESS)
    lineas = [dict(linea.model_dump(), usuario_id=auth.user_id) for linea in data.items]
    return await asyncio.to_thread(ItemService(store).procesar_items, operacion_id, lineas)

@router.post("/{operacion_id}/completar", response_model=schemas.OperacionDetalleResponse)
async def completar_operacion(operacion_id: int, auth: AuthDependency, store: StoreDependency,
                              data: Optional[schemas.CompletarRequest] = None):
    security.require_permission(auth, security.PERM_PROCESS)
    data = data or schemas.CompletarRequest()
    return await asyncio.to_thread(
        OperationService(store).completar,
        operacion_id, [i.model_dump() for i in data.items], data.forzar, auth.user_id,
        data.exigir_creacion
    )

@router.post("/{operacion_id}/cancelar", response_model=schemas.OperacionDetalleResponse)
async def cancelar_operacion(operacion_id: int, data: schemas.CancelarRequest,
                             auth: AuthDependency, store: StoreDependency):
    security.require_permission(auth, security.PERM_EDIT)
    return await asyncio.to_thread(OperationService(store).cancelar, operacion_id, data.motivo)
