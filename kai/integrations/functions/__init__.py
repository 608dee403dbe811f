"""Remote functions gateway."""

from kai.integrations.functions.gateway import FunctionsError, FunctionsGateway, ImportReceipt

__all__ = ["FunctionsError", "FunctionsGateway", "ImportReceipt"]
