"""
Slot Game Configuration Manager
Loads gameConfig.json files, validates them and builds immutable slot definitions
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Tuple

from marshmallow import ValidationError

from cascade_be.exceptions import InvalidConfigurationException
from cascade_be.schemas import GameConfigFileSchema

logger = logging.getLogger(__name__)

DEFAULT_SLOTS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'slots'))


@dataclass(frozen=True)
class SymbolDef:
    id: str
    name: str
    weight: int


@dataclass(frozen=True)
class SlotDefinition:
    """Everything the engine needs to know about one cascading-cluster slot."""
    name: str
    short_name: str
    rows: int
    cols: int
    symbols: Tuple[SymbolDef, ...]
    scatter_id: str
    paytable: Dict[str, Dict[int, float]]  # symbol -> bracket -> scaled multiplier
    brackets: Tuple[int, ...]
    free_spin_awards: Dict[int, int]  # scatter count -> free spins
    scatter_trigger_count: int
    paytable_scale: float
    bet_options: Tuple[float, ...] = field(default=(1.0,))
    default_bet: float = 1.0

    def symbol_name(self, symbol_id: str) -> str:
        for symbol in self.symbols:
            if symbol.id == symbol_id:
                return symbol.name
        return symbol_id


def build_slot_definition(raw_config: Dict[str, Any]) -> SlotDefinition:
    """
    Validates a raw gameConfig document and builds a SlotDefinition.

    The paytable scale is applied here, exactly once; base values in the file
    are never modified.

    Raises:
        InvalidConfigurationException: If the document fails schema validation.
    """
    try:
        loaded = GameConfigFileSchema().load(raw_config)
    except ValidationError as e:
        raise InvalidConfigurationException(
            status_message="Slot configuration failed validation.",
            details={'errors': e.messages}
        )

    game = loaded['game']
    scale = game['paytable_scale']
    scatter_id = game['symbol_scatter']

    symbols = tuple(
        SymbolDef(id=s['id'], name=s.get('name') or s['id'], weight=s['weight'])
        for s in game['symbols']
    )

    paytable = {}
    for s in game['symbols']:
        if s['id'] == scatter_id:
            continue
        paytable[s['id']] = {int(k): float(v) * scale for k, v in s['cluster_payouts'].items()}

    free_spins_cfg = game['bonus_features']['free_spins']
    settings = game['settings']

    return SlotDefinition(
        name=game['name'],
        short_name=game['short_name'],
        rows=game['layout']['rows'],
        cols=game['layout']['columns'],
        symbols=symbols,
        scatter_id=scatter_id,
        paytable=paytable,
        brackets=tuple(game['cluster_brackets']),
        free_spin_awards={int(k): v for k, v in free_spins_cfg['awards'].items()},
        scatter_trigger_count=free_spins_cfg['trigger_count'],
        paytable_scale=scale,
        bet_options=tuple(settings['bet_options']),
        default_bet=settings['default_bet'],
    )


def load_game_config(slot_short_name: str, base_path: Optional[str] = None) -> SlotDefinition:
    """
    Loads the gameConfig.json for a slot and returns its SlotDefinition.

    Args:
        slot_short_name: Directory name of the slot under the slots directory.
        base_path: Alternative slots directory (used by tests and the simulator).

    Raises:
        InvalidConfigurationException: Missing file, malformed JSON or invalid structure.
    """
    base_dir = base_path or DEFAULT_SLOTS_DIR
    file_path = os.path.join(base_dir, slot_short_name, "gameConfig.json")

    if not os.path.exists(file_path):
        raise InvalidConfigurationException(
            status_message=f"Configuration file for slot '{slot_short_name}' not found.",
            details={'path': file_path}
        )

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            raw_config = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfigurationException(
            status_message=f"Configuration file for slot '{slot_short_name}' is not valid JSON.",
            details={'path': file_path, 'error': str(e)}
        )

    definition = build_slot_definition(raw_config)
    logger.info("Loaded slot configuration '%s' (%dx%d, %d symbols, scale %.2f)",
                definition.short_name, definition.rows, definition.cols,
                len(definition.symbols), definition.paytable_scale)
    return definition


class GameConfigManager:
    """Caches slot definitions per short name"""

    _config_cache: Dict[str, SlotDefinition] = {}

    @classmethod
    def get_definition(cls, slot_short_name: str, base_path: Optional[str] = None) -> SlotDefinition:
        cache_key = f"{base_path or DEFAULT_SLOTS_DIR}:{slot_short_name}"
        if cache_key not in cls._config_cache:
            cls._config_cache[cache_key] = load_game_config(slot_short_name, base_path)
        return cls._config_cache[cache_key]

    @classmethod
    def get_client_config(cls, definition: SlotDefinition) -> Dict[str, Any]:
        """
        Configuration for the renderer: layout, bet options and the scaled
        paytable with symbol names. Symbol weights stay server-side.
        """
        paytable = []
        for symbol in definition.symbols:
            if symbol.id == definition.scatter_id:
                continue
            pays = definition.paytable.get(symbol.id, {})
            paytable.append({
                "id": symbol.id,
                "name": symbol.name,
                "pays": {str(b): round(pays.get(b, 0.0), 4) for b in definition.brackets},
            })

        return {
            "game": {
                "name": definition.name,
                "short_name": definition.short_name,
                "layout": {"rows": definition.rows, "columns": definition.cols},
                "symbols": [{"id": s.id, "name": s.name} for s in definition.symbols],
                "scatter": definition.scatter_id,
                "cluster_brackets": list(definition.brackets),
                "paytable": paytable,
                "free_spins": {str(k): v for k, v in sorted(definition.free_spin_awards.items())},
                "settings": {
                    "betOptions": list(definition.bet_options),
                    "defaultBet": definition.default_bet,
                },
            }
        }

    @classmethod
    def clear_cache(cls, slot_short_name: Optional[str] = None):
        """Clear configuration cache"""
        if slot_short_name:
            for key in [k for k in cls._config_cache if k.endswith(f":{slot_short_name}")]:
                cls._config_cache.pop(key, None)
        else:
            cls._config_cache.clear()
