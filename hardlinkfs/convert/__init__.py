from hardlinkfs.convert.service import ConversionService, LinkSwapError, conversion_result_to_dict, replace_with_link
from hardlinkfs.convert.types import ConversionItem, ConversionRequest, ConversionResult, ConversionStatus

__all__ = [
    "ConversionItem",
    "ConversionRequest",
    "ConversionResult",
    "ConversionService",
    "ConversionStatus",
    "LinkSwapError",
    "conversion_result_to_dict",
    "replace_with_link",
]
