# notifier/errors.py
"""
Taxonomia de erros do pipeline de entrega.

- ValidationError ........ entrada inválida (enqueue/template/texto); não re-tentável
- NotFoundError .......... template/credencial/conversa ausente; falha terminal na fila
- TransientProviderError . falha HTTP/rede na Cloud API; re-tentável via backoff
- SignatureError ......... assinatura do webhook inválida; request rejeitado (403)
- ComplianceError ........ opt-out ou janela de 24h expirada; sinal distinto para o
                           chamador trocar para envio por template

Os blueprints convertem qualquer NotifierError em JSON {"error", "code"}.
"""

from __future__ import annotations


class NotifierError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(NotifierError):
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(NotifierError):
    code = "NOT_FOUND"
    http_status = 404


class TransientProviderError(NotifierError):
    code = "PROVIDER_ERROR"
    http_status = 502
    retryable = True

    def __init__(self, message: str, *, status: int | None = None, detail: dict | None = None):
        super().__init__(message)
        self.status = status
        self.detail = detail or {}


class SignatureError(NotifierError):
    code = "INVALID_SIGNATURE"
    http_status = 403


class ComplianceError(NotifierError):
    code = "TEMPLATE_REQUIRED"
    http_status = 409


def template_required() -> ComplianceError:
    return ComplianceError("template required", code="TEMPLATE_REQUIRED")


def opted_out() -> ComplianceError:
    return ComplianceError("recipient has opted out of WhatsApp messages", code="OPTED_OUT")
