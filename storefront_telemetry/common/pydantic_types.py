from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict, Field  # noqa: F401


class BaseModel(PydanticBaseModel):
    """Common pydantic configurations for storefront telemetry"""

    model_config = ConfigDict(protected_namespaces=())
