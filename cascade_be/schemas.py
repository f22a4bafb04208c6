from marshmallow import Schema, fields, ValidationError, validates, validates_schema
from marshmallow.validate import Range, Length, Regexp


# --- Game configuration (gameConfig.json) ---

class SymbolConfigSchema(Schema):
    id = fields.Str(required=True, validate=Length(min=1, max=16))
    name = fields.Str(load_default=None)
    weight = fields.Int(required=True, validate=Range(min=0, error="Symbol weight must be a non-negative integer."))
    cluster_payouts = fields.Dict(
        keys=fields.Str(validate=Regexp(r'^\d+$', error="Cluster bracket keys must be whole numbers.")),
        values=fields.Float(validate=Range(min=0)),
        load_default=dict
    )


class LayoutSchema(Schema):
    rows = fields.Int(required=True, validate=Range(min=1, max=20))
    columns = fields.Int(required=True, validate=Range(min=1, max=20))


class FreeSpinsSchema(Schema):
    trigger_count = fields.Int(load_default=3, validate=Range(min=1))
    awards = fields.Dict(
        keys=fields.Str(validate=Regexp(r'^\d+$', error="Scatter count keys must be whole numbers.")),
        values=fields.Int(validate=Range(min=0)),
        required=True
    )


class BonusFeaturesSchema(Schema):
    free_spins = fields.Nested(FreeSpinsSchema, required=True)


class SettingsSchema(Schema):
    bet_options = fields.List(
        fields.Float(validate=Range(min=0, min_inclusive=False)),
        data_key='betOptions',
        load_default=lambda: [1.0]
    )
    default_bet = fields.Float(data_key='defaultBet', load_default=1.0, validate=Range(min=0, min_inclusive=False))


class GameConfigSchema(Schema):
    name = fields.Str(required=True)
    short_name = fields.Str(required=True)
    layout = fields.Nested(LayoutSchema, required=True)
    symbol_scatter = fields.Str(required=True)
    paytable_scale = fields.Float(load_default=1.0, validate=Range(min=0, min_inclusive=False))
    cluster_brackets = fields.List(fields.Int(validate=Range(min=1)), load_default=lambda: [5, 8, 11, 15])
    symbols = fields.List(fields.Nested(SymbolConfigSchema), required=True, validate=Length(min=1))
    bonus_features = fields.Nested(BonusFeaturesSchema, required=True)
    settings = fields.Nested(SettingsSchema, load_default=lambda: {'bet_options': [1.0], 'default_bet': 1.0})

    @validates('cluster_brackets')
    def validate_brackets_increasing(self, value, **kwargs):
        if not value:
            raise ValidationError('At least one cluster bracket is required.')
        if any(later <= earlier for earlier, later in zip(value, value[1:])):
            raise ValidationError('Cluster brackets must be strictly increasing.')

    @validates_schema
    def validate_symbols(self, data, **kwargs):
        symbols = data.get('symbols', [])
        ids = [s['id'] for s in symbols]
        if len(ids) != len(set(ids)):
            raise ValidationError('Symbol ids must be unique.', 'symbols')

        scatter_id = data.get('symbol_scatter')
        if scatter_id not in ids:
            raise ValidationError(f"Scatter symbol '{scatter_id}' is not in the symbol list.", 'symbol_scatter')

        brackets = set(data.get('cluster_brackets', []))
        for symbol in symbols:
            payouts = symbol.get('cluster_payouts') or {}
            if symbol['id'] == scatter_id and payouts:
                raise ValidationError('The scatter symbol must not have cluster payouts.', 'symbols')
            unknown = [k for k in payouts if int(k) not in brackets]
            if unknown:
                raise ValidationError(
                    f"Symbol '{symbol['id']}' has payouts for unknown brackets: {sorted(unknown, key=int)}", 'symbols'
                )

        if not any(s['id'] != scatter_id for s in symbols):
            raise ValidationError('At least one non-scatter symbol is required.', 'symbols')


class GameConfigFileSchema(Schema):
    game = fields.Nested(GameConfigSchema, required=True)


# --- API requests ---

class SpinRequestSchema(Schema):
    bet_amount = fields.Float(
        required=True,
        validate=Range(min=0, min_inclusive=False, error="Bet amount must be positive.")
    )


class AutoplayRequestSchema(Schema):
    bet_amount = fields.Float(
        required=True,
        validate=Range(min=0, min_inclusive=False, error="Bet amount must be positive.")
    )
    num_spins = fields.Int(
        load_default=20,
        validate=Range(min=1, max=1000, error="Autoplay runs between 1 and 1,000 spins.")
    )


class ResetRequestSchema(Schema):
    balance = fields.Float(load_default=None, allow_none=True, validate=Range(min=0))


class SimulateRequestSchema(Schema):
    num_spins = fields.Int(load_default=10000, validate=Range(min=1))
    bet_amount = fields.Float(load_default=1.0, validate=Range(min=0, min_inclusive=False))
    seed = fields.Int(load_default=None, allow_none=True)


# --- API responses ---

class SpinOutcomeSchema(Schema):
    spin_win = fields.Float()
    total_win = fields.Float()
    bonus_win = fields.Float()
    free_spins_awarded = fields.Int()
    free_spins_played = fields.Int()
    scatter_count = fields.Int()
    cascade_count = fields.Int()
    is_free = fields.Bool()
    balance = fields.Float()
    free_spin_outcomes = fields.List(
        fields.Nested(lambda: SpinOutcomeSchema(exclude=('free_spin_outcomes',)))
    )


class SessionStateSchema(Schema):
    balance = fields.Float()
    free_spins_remaining = fields.Int()
    current_is_free = fields.Bool()
    last_win = fields.Float()
    global_multiplier = fields.Int()
    grid = fields.List(fields.List(fields.Str(allow_none=True)))
    multiplier_grid = fields.List(fields.List(fields.Int()))
