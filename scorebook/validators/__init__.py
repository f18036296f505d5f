from scorebook.validators.ids import validate_uuid, is_uuid
from scorebook.validators.delivery_validator import DeliveryValidator

__all__ = ["validate_uuid", "is_uuid", "DeliveryValidator"]
