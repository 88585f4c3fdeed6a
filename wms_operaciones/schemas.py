# wms_operaciones/schemas.py
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal

# --- Schemas para Items ---

class OperacionItemCreate(BaseModel):
    producto_id: int
    cantidad_solicitada: Decimal = Field(gt=0)
    variante_id: Optional[int] = None
    numero_serie_id: Optional[int] = None
    ubicacion_origen_id: Optional[int] = None
    ubicacion_destino_id: Optional[int] = None
    lote: Optional[str] = None
    fecha_vencimiento: Optional[date] = None
    notas: Optional[str] = None

class OperacionItemResponse(BaseModel):
    id: int
    operacion_id: int
    producto_id: int
    variante_id: Optional[int] = None
    numero_serie_id: Optional[int] = None
    cantidad_solicitada: Decimal
    cantidad_procesada: Decimal
    ubicacion_origen_id: Optional[int] = None
    ubicacion_destino_id: Optional[int] = None
    lote: Optional[str] = None
    fecha_vencimiento: Optional[date] = None
    notas: Optional[str] = None
    estado: str
    procesado_por: Optional[int] = None
    procesado_en: Optional[datetime] = None

    class Config:
        from_attributes = True

class ProcesarItemRequest(BaseModel):
    cantidad_procesada: Decimal
    ubicacion_destino_id: Optional[int] = None

class ProcesarItemLinea(ProcesarItemRequest):
    item_id: int

class ProcesarLoteRequest(BaseModel):
    items: List[ProcesarItemLinea]

class ProcesarLoteResultado(BaseModel):
    item_id: int
    ok: bool
    item: Optional[OperacionItemResponse] = None
    error: Optional[str] = None
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

# --- Schemas para Operaciones ---

class OperacionCreate(BaseModel):
    tipo_operacion: str
    sucursal_id: int
    origen_tipo: Optional[str] = None
    origen_id: Optional[int] = None
    origen_folio: Optional[str] = None
    nombre: Optional[str] = None
    prioridad: Optional[int] = None
    fecha_programada: Optional[datetime] = None
    notas: Optional[str] = None
    ubicacion_origen_id: Optional[int] = None
    ubicacion_destino_id: Optional[int] = None
    items: List[OperacionItemCreate] = []

class OperacionUpdate(BaseModel):
    # Todos opcionales; solo se envían los que cambian
    nombre: Optional[str] = None
    prioridad: Optional[int] = None
    fecha_programada: Optional[datetime] = None
    notas: Optional[str] = None
    ubicacion_origen_id: Optional[int] = None
    ubicacion_destino_id: Optional[int] = None

class AsignarRequest(BaseModel):
    usuario_id: int

class CompletarRequest(BaseModel):
    items: List[ProcesarItemLinea] = []
    forzar: bool = False
    # True: el cliente espera una operación siguiente nueva (409 si ya existía)
    exigir_creacion: bool = False

class CancelarRequest(BaseModel):
    motivo: str

class OperacionResponse(BaseModel):
    id: int
    folio: str
    nombre: Optional[str] = None
    tipo_operacion: str
    estado: str
    sucursal_id: int
    origen_tipo: str
    origen_id: Optional[int] = None
    origen_folio: Optional[str] = None
    ubicacion_origen_id: Optional[int] = None
    ubicacion_destino_id: Optional[int] = None
    asignado_a: Optional[int] = None
    prioridad: int
    fecha_programada: Optional[datetime] = None
    notas: Optional[str] = None
    notas_internas: Optional[str] = None
    total_items: Decimal
    total_procesados: Decimal
    operacion_anterior_id: Optional[int] = None
    operacion_siguiente_id: Optional[int] = None
    creado_por: Optional[int] = None
    fecha_inicio: Optional[datetime] = None
    fecha_fin: Optional[datetime] = None
    creado_en: Optional[datetime] = None
    actualizado_en: Optional[datetime] = None

    class Config:
        from_attributes = True

class OperacionDetalleResponse(OperacionResponse):
    items: List[OperacionItemResponse] = []
