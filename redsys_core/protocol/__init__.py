from redsys_core.protocol.codec import decode_parameters, encode_parameters
from redsys_core.protocol.order_number import extract_tag, generate_order_number, is_valid_order_number
from redsys_core.protocol.parameters import MerchantParameters, ResponseParameters
from redsys_core.protocol.signature import create_signature, verify_signature

__all__ = [
    "encode_parameters",
    "decode_parameters",
    "create_signature",
    "verify_signature",
    "generate_order_number",
    "is_valid_order_number",
    "extract_tag",
    "MerchantParameters",
    "ResponseParameters",
]
