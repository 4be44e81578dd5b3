class CollegeNewsError(Exception):
    """Base de todos os erros do pipeline e do ciclo de inscrição."""


class FetchError(CollegeNewsError):
    """Falha de rede/TLS/timeout ao baixar a página (o próximo ciclo é o retry)."""


class PersistenceError(CollegeNewsError):
    """Falha ao ler ou gravar no document store."""


class DuplicateKeyError(PersistenceError):
    def __init__(self, field: str, value):
        super().__init__(f"duplicate value for '{field}': {value!r}")
        self.field = field
        self.value = value


class ValidationError(CollegeNewsError):
    """Pedido de inscrição rejeitado; a mensagem vai para quem pediu."""


class TokenError(CollegeNewsError):
    """Token expirado, com assinatura inválida ou de outro propósito."""


class SendError(CollegeNewsError):
    """Falha no envio de um e-mail para um destinatário."""
