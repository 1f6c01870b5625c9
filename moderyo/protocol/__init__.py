"""Wire format of the moderation protocol: request encoding, response decoding."""

from moderyo.protocol.codec import decode_error, decode_response, encode_request

__all__ = ["decode_error", "decode_response", "encode_request"]
