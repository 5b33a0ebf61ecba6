from pydantic import BaseModel, ConfigDict


class Binding(BaseModel):
    model_config = ConfigDict(frozen=True)

    routing_key: str
    exchange_name: str


def bind(routing_key: str, exchange_name: str) -> Binding:
    return Binding(routing_key=routing_key, exchange_name=exchange_name)
