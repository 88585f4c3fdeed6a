# test_api_operaciones.py
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from wms_operaciones import security
from wms_operaciones.api.operaciones import get_store
from wms_operaciones.main import app

BASE_URL = "http://test"
TODOS_LOS_PERMISOS = [security.PERM_VIEW, security.PERM_EDIT, security.PERM_ASSIGN, security.PERM_PROCESS]


def _headers(permissions=TODOS_LOS_PERMISOS, user_id=7):
    token = security.create_access_token({"sub": "operario", "user_id": user_id, "permissions": permissions})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def ac(store):
    app.dependency_overrides[get_store] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client
    app.dependency_overrides.clear()


async def _crear(ac, *cantidades, tipo="recepcion", **extra):
    payload = {
        "tipo_operacion": tipo,
        "sucursal_id": 1,
        "items": [{"producto_id": 100 + i, "cantidad_solicitada": c} for i, c in enumerate(cantidades)],
    }
    payload.update(extra)
    res = await ac.post("/operaciones/", json=payload, headers=_headers())
    assert res.status_code == 201, res.text
    return res.json()


@pytest.mark.asyncio
async def test_flujo_recepcion_a_control_calidad(ac):
    op = await _crear(ac, 20, origen_tipo="orden_compra", origen_id=44)
    assert op['estado'] == "borrador"
    assert op['creado_por'] == 7

    res = await ac.post(f"/operaciones/{op['id']}/asignar", json={"usuario_id": 7}, headers=_headers())
    assert res.json()['estado'] == "asignada"

    res = await ac.post(f"/operaciones/{op['id']}/iniciar", headers=_headers())
    assert res.json()['estado'] == "en_proceso"

    item_id = op['items'][0]['id']
    res = await ac.post(f"/operaciones/items/{item_id}/procesar",
                        json={"cantidad_procesada": 20, "ubicacion_destino_id": 3}, headers=_headers())
    assert res.status_code == 200, res.text
    assert res.json()['estado'] == "procesado"
    assert res.json()['procesado_por'] == 7

    res = await ac.post(f"/operaciones/{op['id']}/completar", headers=_headers())
    assert res.status_code == 200, res.text
    completada = res.json()
    assert completada['estado'] == "completada"

    res = await ac.get(f"/operaciones/{completada['operacion_siguiente_id']}", headers=_headers())
    siguiente = res.json()
    assert siguiente['tipo_operacion'] == "control_calidad"
    assert siguiente['estado'] == "borrador"
    assert Decimal(siguiente['items'][0]['cantidad_solicitada']) == Decimal("20")

    res = await ac.get(f"/operaciones/{siguiente['id']}/cadena", headers=_headers())
    assert [o['id'] for o in res.json()] == [op['id'], siguiente['id']]


@pytest.mark.asyncio
async def test_exceso_de_cantidad_devuelve_409(ac):
    op = await _crear(ac, 10)
    await ac.post(f"/operaciones/{op['id']}/iniciar", headers=_headers())
    item_id = op['items'][0]['id']
    await ac.post(f"/operaciones/items/{item_id}/procesar", json={"cantidad_procesada": 8}, headers=_headers())

    res = await ac.post(f"/operaciones/items/{item_id}/procesar", json={"cantidad_procesada": 3}, headers=_headers())

    assert res.status_code == 409
    body = res.json()
    assert body['code'] == "ITEM_002"
    assert body['details']['cantidad_procesada'] == "8"


@pytest.mark.asyncio
async def test_operacion_inexistente_devuelve_404(ac):
    res = await ac.get("/operaciones/999", headers=_headers())
    assert res.status_code == 404
    assert res.json()['code'] == "OP_001"


@pytest.mark.asyncio
async def test_transicion_invalida_devuelve_409(ac):
    op = await _crear(ac, 1)
    res = await ac.post(f"/operaciones/{op['id']}/completar", json={"forzar": True}, headers=_headers())
    assert res.status_code == 409
    assert res.json()['details']['estado_actual'] == "borrador"


@pytest.mark.asyncio
async def test_completar_reintento(ac):
    op = await _crear(ac, 1)
    await ac.post(f"/operaciones/{op['id']}/iniciar", headers=_headers())
    await ac.post(f"/operaciones/items/{op['items'][0]['id']}/procesar",
                  json={"cantidad_procesada": 1}, headers=_headers())
    primera = await ac.post(f"/operaciones/{op['id']}/completar", headers=_headers())
    assert primera.status_code == 200, primera.text
    siguiente_id = primera.json()['operacion_siguiente_id']

    res = await ac.post(f"/operaciones/{op['id']}/completar", headers=_headers())
    assert res.status_code == 200
    assert res.json()['operacion_siguiente_id'] == siguiente_id

    res = await ac.post(f"/operaciones/{op['id']}/completar", json={"exigir_creacion": True},
                        headers=_headers())
    assert res.status_code == 409
    assert res.json()['code'] == "OP_006"
    assert res.json()['details']['operacion_siguiente_id'] == siguiente_id


@pytest.mark.asyncio
async def test_cancelar_sin_motivo_devuelve_400(ac):
    op = await _crear(ac, 1)
    res = await ac.post(f"/operaciones/{op['id']}/cancelar", json={"motivo": " "}, headers=_headers())
    assert res.status_code == 400
    assert res.json()['code'] == "OP_007"

    res = await ac.post(f"/operaciones/{op['id']}/cancelar", json={"motivo": "stock error"}, headers=_headers())
    assert res.status_code == 200
    assert "stock error" in res.json()['notas_internas']


@pytest.mark.asyncio
async def test_sin_permiso_devuelve_403(ac):
    op = await _crear(ac, 1)
    res = await ac.post(f"/operaciones/{op['id']}/asignar", json={"usuario_id": 9},
                        headers=_headers(permissions=[security.PERM_VIEW]))
    assert res.status_code == 403
    assert res.json()['code'] == "PERM_001"


@pytest.mark.asyncio
async def test_sin_token_devuelve_401(ac):
    res = await ac.get("/operaciones/")
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_cantidad_solicitada_invalida_devuelve_422(ac):
    payload = {"tipo_operacion": "recepcion", "sucursal_id": 1,
               "items": [{"producto_id": 1, "cantidad_solicitada": 0}]}
    res = await ac.post("/operaciones/", json=payload, headers=_headers())
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_actualizar_y_listar(ac):
    op = await _crear(ac, 1)
    await _crear(ac, 1, tipo="picking")

    res = await ac.put(f"/operaciones/{op['id']}", json={"prioridad": 1, "notas": "urgente"}, headers=_headers())
    assert res.status_code == 200
    assert res.json()['prioridad'] == 1

    res = await ac.get("/operaciones/", params={"sucursal_id": 1}, headers=_headers())
    assert [o['id'] for o in res.json()][0] == op['id']

    res = await ac.get("/operaciones/", params={"tipo_operacion": "picking"}, headers=_headers())
    assert [o['tipo_operacion'] for o in res.json()] == ["picking"]


@pytest.mark.asyncio
async def test_procesar_lote(ac):
    op = await _crear(ac, 5, 5)
    await ac.post(f"/operaciones/{op['id']}/iniciar", headers=_headers())
    lineas = [{"item_id": op['items'][0]['id'], "cantidad_procesada": 5},
              {"item_id": op['items'][1]['id'], "cantidad_procesada": 9}]

    res = await ac.post(f"/operaciones/{op['id']}/items/procesar", json={"items": lineas}, headers=_headers())

    assert res.status_code == 200
    assert [r['ok'] for r in res.json()] == [True, False]
    assert res.json()[1]['code'] == "ITEM_002"


@pytest.mark.asyncio
async def test_tablero(ac):
    op = await _crear(ac, 2)
    await _crear(ac, 1, tipo="picking")
    await ac.post(f"/operaciones/{op['id']}/iniciar", headers=_headers())

    res = await ac.get("/operaciones/pendientes/1", headers=_headers())
    assert res.json()['total'] == 2
    assert res.json()['por_tipo']['picking'] == 1

    res = await ac.get("/operaciones/kanban/1", headers=_headers())
    assert res.json()['conteos'] == {"borrador": 1, "asignada": 0, "en_proceso": 1, "parcial": 0, "completada": 0}

    res = await ac.get("/operaciones/estadisticas/1", headers=_headers())
    assert res.status_code == 200
    assert res.json()['total_operaciones'] == 2
