import json
from typing import Dict, List, Tuple
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

from fastapi import FastAPI, Request
from fastapi.responses import Response

app = FastAPI(title="Mock PAQ Adelantos SOAP Server", version="1.0.0")

NAMESPACE = "http://www.paq.com.gt/"
USERNAME = "paq-user"
PASSWORD = "paq-pass"
VALID_TOKEN = "ABC123"

# Every request received, for assertions in end-to-end tests
CALLS: List[Tuple[str, Dict[str, str]]] = []

COMPLETE_CLIENT = {
    "ID": "CL-1000",
    "STATUS": "A",
    "NUMERO_IDENTIFICACION": "2456789010101",
    "NOMBRE_COMPLETO": "Ana Lucia Morales",
    "EMAIL": "ana.morales@example.com",
    "NIT": "1234567-8",
    "FECHA_ALTA": "2021-03-15T00:00:00",
    "SALARIO_MENSUAL": 6500,
    "FRECUENCIA_PAGO": "Q",
}

# Personas keyed by phone
COMPLETE = "55550000"
NEW_CLIENT = "55550005"
PARTIAL_CLIENT = "55550006"
TERMS_ACCEPTED = "55550024"
COMMISSION_ISSUE = "55550034"
BLOCKED = "55550099"
NO_CUPO = "55550013"
PLAIN_TEXT_OTP = "55550088"

KNOWN_CLIENTS = {COMPLETE, TERMS_ACCEPTED, COMMISSION_ISSUE, NO_CUPO, PLAIN_TEXT_OTP}


@app.get("/health")
def health(): return {"status": "ok"}


def _local(tag: str) -> str:
    return tag.split("}", 1)[1] if "}" in tag else tag


def _envelope(method: str, result: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/"><soap:Body>'
        f'<{method}Response xmlns="{NAMESPACE}"><{method}Result>{result}</{method}Result></{method}Response>'
        "</soap:Body></soap:Envelope>"
    )


def _json_result(method: str, body: dict) -> Response:
    return Response(content=_envelope(method, escape(json.dumps(body))), media_type="text/xml")


def _element_result(method: str, body: dict) -> Response:
    children = "".join(f"<{k}>{escape(str(v))}</{k}>" for k, v in body.items())
    return Response(content=_envelope(method, children), media_type="text/xml")


def _consulta_cliente(phone: str) -> dict:
    if phone == BLOCKED:
        return {"codret": 99, "mensaje": "Cliente bloqueado"}
    if phone == NEW_CLIENT:
        return {"codret": 5, "mensaje": "Cliente no registrado"}
    if phone == PARTIAL_CLIENT:
        return {"codret": 0, "mensaje": "OK", "cliente": {"ID": "CL-2006", "CELULAR": phone, "EMAIL": ""}}
    if phone in KNOWN_CLIENTS:
        return {"codret": 0, "mensaje": "OK", "cliente": {**COMPLETE_CLIENT, "CELULAR": phone}}
    return {"codret": 99, "mensaje": "Numero no registrado"}


def _envia_token(phone: str) -> dict:
    if phone == TERMS_ACCEPTED:
        return {"codret": 24, "mensaje": "Cliente ya acepto terminos"}
    return {"codret": "0", "mensaje": "Token enviado"}


def _valida_cupo(phone: str) -> dict:
    if phone == NO_CUPO:
        return {"codret": 13, "mensaje": "Cliente sin cupo disponible"}
    return {
        "codret": 0,
        "mensaje": "Cupo valido",
        "id_solicitud": f"SOL-{phone[-4:]}",
        "celular": phone,
        "cupo_autorizado": "3500.00",
        "comision_sobre_cupo": "294.00",
        "porc_comision": "7.5",
    }


@app.post("/PAQAdelantos.asmx")
async def soap_endpoint(request: Request):
    try:
        root = ET.fromstring(await request.body())
    except ET.ParseError:
        return Response(content="Bad Request", status_code=400)

    body = next(e for e in root.iter() if _local(e.tag) == "Body")
    call = body[0]
    method = _local(call.tag)
    fields = {_local(child.tag): (child.text or "") for child in call}
    CALLS.append((method, fields))

    if fields.get("USERNAME") != USERNAME or fields.get("PASSWORD") != PASSWORD:
        return Response(content="Authentication failed", status_code=500)

    phone = fields.get("CELULAR", "")

    if method == "Consulta_Cliente":
        return _json_result(method, _consulta_cliente(phone))
    if method == "Envia_Token_TyC":
        if phone == PLAIN_TEXT_OTP:
            return Response(content=_envelope(method, "Token enviado"), media_type="text/xml")
        return _json_result(method, _envia_token(phone))
    if method == "Valida_Token_TyC":
        if fields.get("TOKEN") != VALID_TOKEN:
            return _json_result(method, {"codret": 7, "mensaje": "Token invalido"})
        return _json_result(method, {"codret": 0, "mensaje": "Token valido"})
    if method == "valida_cupo":
        return _element_result(method, _valida_cupo(phone))
    if method == "Ejecuta_Desembolso":
        if phone == COMMISSION_ISSUE:
            return _json_result(method, {"codret": 34, "mensaje": "Desembolso realizado; comision pendiente"})
        return _json_result(method, {"codret": 0, "mensaje": "Desembolso realizado"})
    if method == "Registra_Cliente":
        return _json_result(method, {"codret": 0, "mensaje": "Cliente registrado", "id_cliente": f"CL-{phone[-4:]}"})
    if method == "Edita_Cliente":
        return _json_result(method, {"codret": 0, "mensaje": "Cliente actualizado"})

    return Response(content=f"Unknown method {method}", status_code=500)
