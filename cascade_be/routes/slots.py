from flask import Blueprint, request, jsonify, current_app
from http import HTTPStatus
from marshmallow import ValidationError

from ..schemas import (
    SpinRequestSchema, AutoplayRequestSchema, ResetRequestSchema, SimulateRequestSchema,
    SpinOutcomeSchema, SessionStateSchema
)
from ..utils.game_config_manager import GameConfigManager
from ..utils.slot_tester import simulate
from cascade_be.exceptions import ValidationException

slots_bp = Blueprint('slots', __name__, url_prefix='/api/slots')


def _session():
    return current_app.extensions['slot_session']


def _load_request(schema, allow_empty=False):
    json_data = request.get_json(silent=True)
    if json_data is None:
        if not allow_empty:
            raise ValidationException(status_message="Invalid JSON payload.")
        json_data = {}
    try:
        return schema.load(json_data)
    except ValidationError as e:
        raise ValidationException(status_message="Input validation failed.", details=e.messages)


@slots_bp.route('/config', methods=['GET'])
def get_config():
    session = _session()
    return jsonify({'status': True, **GameConfigManager.get_client_config(session.definition)}), HTTPStatus.OK


@slots_bp.route('/state', methods=['GET'])
def get_state():
    return jsonify({'status': True, 'state': SessionStateSchema().dump(_session().snapshot())}), HTTPStatus.OK


@slots_bp.route('/spin', methods=['POST'])
def spin():
    data = _load_request(SpinRequestSchema())
    session = _session()

    outcome, events = session.spin(data['bet_amount'])
    current_app.logger.info(
        f"Slot spin: bet {data['bet_amount']}, win {outcome.total_win:.4f}, "
        f"free spins played {outcome.free_spins_played}, balance {outcome.balance:.2f}"
    )
    return jsonify({
        'status': True,
        'outcome': SpinOutcomeSchema().dump(outcome),
        'events': events,
        'state': SessionStateSchema().dump(session.snapshot())
    }), HTTPStatus.OK


@slots_bp.route('/autoplay', methods=['POST'])
def autoplay():
    data = _load_request(AutoplayRequestSchema())
    session = _session()

    outcomes, stop_reason = session.autoplay(data['bet_amount'], data['num_spins'])
    return jsonify({
        'status': True,
        'spins_played': len(outcomes),
        'stop_reason': stop_reason,
        'total_win': sum(o.total_win for o in outcomes),
        'outcomes': SpinOutcomeSchema(many=True, exclude=('free_spin_outcomes',)).dump(outcomes),
        'state': SessionStateSchema().dump(session.snapshot())
    }), HTTPStatus.OK


@slots_bp.route('/reset', methods=['POST'])
def reset():
    data = _load_request(ResetRequestSchema(), allow_empty=True)
    session = _session()
    session.reset(data.get('balance'))
    return jsonify({'status': True, 'state': SessionStateSchema().dump(session.snapshot())}), HTTPStatus.OK


@slots_bp.route('/simulate', methods=['POST'])
def run_simulation():
    data = _load_request(SimulateRequestSchema(), allow_empty=True)
    max_spins = current_app.config['MAX_SIMULATION_SPINS']
    if data['num_spins'] > max_spins:
        raise ValidationException(
            status_message=f"Simulations are limited to {max_spins} spins per request.",
            details={'num_spins': data['num_spins'], 'max_spins': max_spins}
        )

    summary = simulate(
        data['num_spins'],
        data['bet_amount'],
        seed=data.get('seed'),
        slot_short_name=current_app.config['SLOT_SHORT_NAME'],
        base_path=current_app.config.get('SLOT_CONFIG_BASE_PATH'),
        max_cascade_iterations=current_app.config['MAX_CASCADE_ITERATIONS'],
        max_free_spins_per_chain=current_app.config['MAX_FREE_SPINS_PER_CHAIN'],
    )
    return jsonify({'status': True, 'summary': summary}), HTTPStatus.OK
