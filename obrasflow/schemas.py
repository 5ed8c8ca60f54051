from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["host", "funcionario"]
ObraStatus = Literal["ativa", "finalizada"]
FerramentaStatus = Literal["disponivel", "em_uso", "desaparecida"]
LocationKind = Literal["obra", "estabelecimento"]


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LocationKind
    id: str = Field(..., min_length=1)

    @classmethod
    def from_columns(cls, kind: str | None, id: str | None) -> "Location | None":
        if kind is None and id is None:
            return None
        if kind is None or id is None:
            raise ValueError("Localizacao inconsistente: tipo e id precisam vir juntos.")
        return cls(kind=kind, id=id)


def location_columns(location: Location | None, type_column: str, id_column: str) -> dict[str, str | None]:
    if location is None:
        return {type_column: None, id_column: None}
    return {type_column: location.kind, id_column: location.id}


def _pop_location(data: Any, type_column: str, id_column: str, target: str) -> Any:
    if isinstance(data, dict) and (type_column in data or id_column in data):
        data = dict(data)
        data[target] = Location.from_columns(data.pop(type_column, None), data.pop(id_column, None))
    return data


class User(BaseModel):
    id: str
    name: str
    email: str
    cnpj: str | None = None
    role: Role
    host_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Obra(BaseModel):
    id: str
    title: str
    description: str | None = None
    endereco: str
    status: ObraStatus = "ativa"
    owner_id: str
    start_date: str | None = None
    end_date: str | None = None
    engenheiro: str | None = None
    image_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ObraCreate(BaseModel):
    title: str = Field(..., min_length=1)
    endereco: str
    owner_id: str
    description: str = ""
    status: ObraStatus = "ativa"
    start_date: str | None = None
    end_date: str | None = None
    engenheiro: str | None = None
    image_url: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> "ObraCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Data de termino anterior a data de inicio.")
        return self


class ObraUpdate(BaseModel):
    title: str | None = None
    endereco: str | None = None
    description: str | None = None
    status: ObraStatus | None = None
    start_date: str | None = None
    end_date: str | None = None
    engenheiro: str | None = None
    image_url: str | None = None


class ObraImage(BaseModel):
    id: str
    obra_id: str
    image_url: str
    description: str | None = None
    display_order: int = 0
    uploaded_by: str
    created_at: str | None = None


class Estabelecimento(BaseModel):
    id: str
    name: str
    endereco: str
    owner_id: str
    created_at: str | None = None
    updated_at: str | None = None


class EstabelecimentoCreate(BaseModel):
    name: str = Field(..., min_length=1)
    endereco: str
    owner_id: str


class EstabelecimentoUpdate(BaseModel):
    name: str | None = None
    endereco: str | None = None


class _FerramentaFields(BaseModel):
    tipo: str | None = None
    modelo: str | None = None
    serial: str | None = None
    descricao: str | None = None
    nf: str | None = None
    nf_image_url: str | None = None
    data: str | None = None
    valor: float | None = None
    tempo_garantia_dias: int | None = None
    garantia: str | None = None
    marca: str | None = None
    numero_lacre: str | None = None
    numero_placa: str | None = None
    adesivo: str | None = None
    usuario: str | None = None
    obra: str | None = None
    image_url: str | None = None


class Ferramenta(_FerramentaFields):
    id: str
    name: str
    status: FerramentaStatus = "disponivel"
    location: Location | None = None
    cadastrado_por: str
    owner_id: str
    created_at: str | None = None
    updated_at: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _location_from_columns(cls, data: Any) -> Any:
        return _pop_location(data, "current_type", "current_id", "location")


class FerramentaCreate(_FerramentaFields):
    name: str = Field(..., min_length=1)
    owner_id: str
    cadastrado_por: str
    status: FerramentaStatus = "disponivel"
    location: Location | None = None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump(exclude={"location"}, exclude_none=True)
        row.update(location_columns(self.location, "current_type", "current_id"))
        return row


class FerramentaUpdate(_FerramentaFields):
    name: str | None = None
    status: FerramentaStatus | None = None
    location: Location | None = None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump(exclude_unset=True, exclude={"location"})
        if "location" in self.model_fields_set:
            row.update(location_columns(self.location, "current_type", "current_id"))
        return row


class Movimentacao(BaseModel):
    id: str
    ferramenta_id: str
    origin: Location | None = None
    destination: Location
    user_id: str
    note: str | None = None
    created_at: str | None = None
    ferramenta_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _locations_from_columns(cls, data: Any) -> Any:
        data = _pop_location(data, "from_type", "from_id", "origin")
        return _pop_location(data, "to_type", "to_id", "destination")


class HistoricoEntry(BaseModel):
    id: str
    ferramenta_id: str
    user_id: str
    action: str
    details: str | None = None
    location: Location | None = None
    created_at: str | None = None
    user_name: str | None = None
    ferramenta_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _location_from_columns(cls, data: Any) -> Any:
        return _pop_location(data, "location_type", "location_id", "location")


class ObraPermission(BaseModel):
    id: str
    user_id: str
    obra_id: str
    host_id: str | None = None
    can_view: bool = False
    can_edit: bool = False
    created_at: str | None = None
    updated_at: str | None = None


class FerramentaPermission(BaseModel):
    id: str
    user_id: str
    ferramenta_id: str
    host_id: str | None = None
    can_view: bool = False
    can_edit: bool = False
    created_at: str | None = None
    updated_at: str | None = None
