"""Bank statement transformers (CSV row → ParsedTransaction)."""

from .amex import compute_row_checksum, read_amex_csv, transform_amex

__all__ = ["compute_row_checksum", "read_amex_csv", "transform_amex"]
