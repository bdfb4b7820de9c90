"""Receipt API validation schemas."""

from marshmallow import EXCLUDE, Schema, fields, post_load, pre_load, validate

from receipt_verification.utils.antifraud import FraudSignal


def _drop_blank(data):
    return {key: value for key, value in data.items() if not (isinstance(value, str) and not value.strip())}


class VerifyReceiptSchema(Schema):
    """Form fields sent alongside the receipt photo."""

    class Meta:
        unknown = EXCLUDE

    declared_total = fields.Float(allow_none=True, load_default=None, validate=validate.Range(min=0))
    latitude = fields.Float(allow_none=True, load_default=None, validate=validate.Range(min=-90, max=90))
    longitude = fields.Float(allow_none=True, load_default=None, validate=validate.Range(min=-180, max=180))
    restaurant_id = fields.Int(allow_none=True, load_default=None)
    known_hashes = fields.Str(load_default="")

    @pre_load
    def normalize(self, data, **kwargs):
        data = _drop_blank(dict(data))
        if isinstance(data.get("declared_total"), str):
            data["declared_total"] = data["declared_total"].replace(",", ".")
        return data

    @post_load
    def split_hashes(self, data, **kwargs):
        data["known_hashes"] = [h.strip() for h in data["known_hashes"].split(",") if h.strip()]
        return data


class ParseReceiptSchema(Schema):
    text = fields.Str(required=True, allow_none=True)


class ExtractedFieldsSchema(Schema):
    """Receipt fields in their serialized (camelCase) form."""

    class Meta:
        unknown = EXCLUDE

    oib = fields.Str(allow_none=True)
    jir = fields.Str(allow_none=True)
    zki = fields.Str(allow_none=True)
    issue_date = fields.Str(data_key="issueDate", allow_none=True)
    issue_time = fields.Str(data_key="issueTime", allow_none=True)
    total_amount = fields.Float(data_key="totalAmount", allow_none=True)
    merchant_name = fields.Str(data_key="merchantName", allow_none=True)
    merchant_address = fields.Str(data_key="merchantAddress", allow_none=True)


class UserLocationSchema(Schema):
    within_geofence = fields.Bool(data_key="withinGeofence", allow_none=True, load_default=None)
    distance = fields.Float(allow_none=True, load_default=None)


class ScoreReceiptSchema(Schema):
    """Decision engine inputs."""

    extracted_data = fields.Nested(ExtractedFieldsSchema, load_default=dict)
    declared_total = fields.Float(allow_none=True, load_default=None)
    user_location = fields.Nested(UserLocationSchema, allow_none=True, load_default=None)
    restaurant_id = fields.Int(allow_none=True, load_default=None)
    fraud_flags = fields.List(
        fields.Str(validate=validate.OneOf([signal.value for signal in FraudSignal])), load_default=list
    )
    vision_confidence = fields.Float(allow_none=True, load_default=None, validate=validate.Range(min=0, max=1))
    parser_confidence = fields.Float(allow_none=True, load_default=None, validate=validate.Range(min=0, max=1))
