# test_assignment_service.py
import pytest

from wms_operaciones.exceptions import ValidationError, NotFoundError, InvalidTransitionError, ErrorCodes
from wms_operaciones.services import OperationStateMachine as SM


def test_asignar_borrador(assignment_service, crear_recepcion):
    op = crear_recepcion(5)
    asignada = assignment_service.asignar(op['id'], 7)

    assert asignada['estado'] == SM.ASIGNADA
    assert asignada['asignado_a'] == 7
    assert [i['estado'] for i in asignada['items']] == [SM.ITEM_PENDIENTE]


def test_reasignar_mantiene_estado(assignment_service, crear_recepcion):
    op = crear_recepcion(5)
    assignment_service.asignar(op['id'], 7)
    reasignada = assignment_service.asignar(op['id'], 8)

    assert reasignada['estado'] == SM.ASIGNADA
    assert reasignada['asignado_a'] == 8


def test_no_se_asigna_en_proceso(assignment_service, crear_recepcion, en_proceso):
    op = crear_recepcion(5)
    en_proceso(op)

    with pytest.raises(InvalidTransitionError) as exc:
        assignment_service.asignar(op['id'], 9)
    assert exc.value.code == ErrorCodes.INVALID_TRANSITION
    assert exc.value.details['accion'] == "asignar"


def test_no_se_asigna_terminal(assignment_service, operation_service, crear_recepcion):
    op = crear_recepcion(5)
    operation_service.cancelar(op['id'], "duplicada")

    with pytest.raises(InvalidTransitionError) as exc:
        assignment_service.asignar(op['id'], 9)
    assert exc.value.code == ErrorCodes.OPERATION_TERMINAL
    assert operation_service.obtener_por_id(op['id'])['asignado_a'] is None


@pytest.mark.parametrize("usuario_id", [0, -1, None, "7", True])
def test_usuario_invalido(assignment_service, crear_recepcion, usuario_id):
    op = crear_recepcion(5)
    with pytest.raises(ValidationError) as exc:
        assignment_service.asignar(op['id'], usuario_id)
    assert exc.value.code == ErrorCodes.INVALID_USER


def test_asignar_inexistente(assignment_service):
    with pytest.raises(NotFoundError):
        assignment_service.asignar(404, 7)


def test_iniciar_respeta_asignado(operation_service, assignment_service, crear_recepcion):
    op = crear_recepcion(5)
    assignment_service.asignar(op['id'], 7)
    iniciada = operation_service.iniciar(op['id'], usuario_id=3)
    assert iniciada['asignado_a'] == 7
