"""SOAP 1.1 envelope builders for the PAQ Adelantos web service"""

from typing import Iterable, Tuple
from xml.sax.saxutils import escape

_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}

# SOAP method names per logical operation
CONSULTA_CLIENTE = "Consulta_Cliente"
ENVIA_TOKEN = "Envia_Token_TyC"
VALIDA_TOKEN = "Valida_Token_TyC"
VALIDA_CUPO = "valida_cupo"
EJECUTA_DESEMBOLSO = "Ejecuta_Desembolso"
REGISTRA_CLIENTE = "Registra_Cliente"
EDITA_CLIENTE = "Edita_Cliente"


def escape_xml(value: object) -> str:
    return escape("" if value is None else str(value), _XML_ENTITIES)


def build_envelope(
    namespace: str,
    method: str,
    username: str,
    password: str,
    fields: Iterable[Tuple[str, object]],
) -> str:
    """Wrap credentials plus operation fields in a SOAP envelope"""
    params = "\n".join(
        f"      <{name}>{escape_xml(value)}</{name}>" for name, value in fields
    )
    return f"""<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <{method} xmlns="{escape_xml(namespace)}">
      <USERNAME>{escape_xml(username)}</USERNAME>
      <PASSWORD>{escape_xml(password)}</PASSWORD>
{params}
    </{method}>
  </soap:Body>
</soap:Envelope>"""


def soap_headers(namespace: str, method: str) -> dict:
    return {
        "Content-Type": "text/xml; charset=utf-8",
        "SOAPAction": f"{namespace}{method}",
        "Accept": "text/xml; charset=utf-8",
        "Accept-Charset": "utf-8, *;q=0.8",
        "Accept-Language": "es, es-ES;q=0.9, *;q=0.8",
        "Cache-Control": "no-cache",
    }
