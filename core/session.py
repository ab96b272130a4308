"""
Contesto di sessione esplicito per la pipeline di import.

Nessun singleton globale: ogni entry point riceve un `SessionContext`
costruito dall'header Authorization (o lato server nei test/job).
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import jwt

from core.config import get_config
from ingest.errors import NotAuthenticated

logger = logging.getLogger(__name__)

Refresher = Callable[[], Awaitable[Optional[str]]]
Listener = Callable[["SessionContext"], None]


def decode_access_token(
    token: str,
    secret: Optional[str] = None,
    algorithm: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Valida token JWT di sessione.

    Args:
        token: Token JWT
        secret: Secret di firma (default da config)
        algorithm: Algoritmo (default da config)

    Returns:
        Payload decodificato se valido e con `sub`, None altrimenti
    """
    config = get_config()
    secret = secret if secret is not None else config.jwt_secret_key
    algorithm = algorithm or config.jwt_algorithm

    if not token:
        logger.warning("[SESSION] Token vuoto")
        return None
    if not secret:
        logger.warning("[SESSION] JWT_SECRET_KEY non configurata, token rifiutato")
        return None

    try:
        # L'audience dei token del provider non è vincolante qui
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_aud": False}
        )
    except jwt.ExpiredSignatureError:
        logger.warning("[SESSION] Token JWT scaduto")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"[SESSION] Token JWT non valido: {e}")
        return None

    if not payload.get("sub"):
        logger.warning("[SESSION] Token valido ma senza claim 'sub'")
        return None
    return payload


class SessionContext:
    """
    Stato della sessione utente passato esplicitamente alla pipeline.

    Un contesto senza token ma con `user_id` è considerato una sessione
    fidata creata lato server.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
        refresher: Optional[Refresher] = None
    ):
        self.user_id = user_id
        self.access_token = access_token
        self.refresher = refresher
        self._listeners: List[Listener] = []

    @classmethod
    def from_token(cls, token: str, refresher: Optional[Refresher] = None) -> "SessionContext":
        payload = decode_access_token(token)
        user_id = str(payload["sub"]) if payload else None
        return cls(user_id=user_id, access_token=token, refresher=refresher)

    @classmethod
    def from_bearer(cls, authorization: Optional[str]) -> "SessionContext":
        """Costruisce il contesto da un header `Authorization: Bearer <jwt>`."""
        if not authorization:
            return cls()
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            logger.warning("[SESSION] Header Authorization non Bearer")
            return cls()
        return cls.from_token(token.strip())

    def get_current_user_id(self) -> Optional[str]:
        return self.user_id

    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    async def validate_session(self) -> bool:
        """
        Verifica la sessione tentando un refresh silenzioso se il token non è più valido.

        Returns:
            True se al termine esiste un utente autenticato
        """
        if not self.access_token:
            return self.is_authenticated()

        payload = decode_access_token(self.access_token)
        if payload:
            self._set_user(str(payload["sub"]))
            return True

        if self.refresher is not None:
            new_token = await self.refresher()
            payload = decode_access_token(new_token) if new_token else None
            if payload:
                logger.info("[SESSION] Sessione rinnovata")
                self.access_token = new_token
                self._set_user(str(payload["sub"]))
                return True

        logger.warning("[SESSION] Sessione non valida")
        self._set_user(None)
        return False

    def sign_out(self):
        self.access_token = None
        self._set_user(None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Registra un listener chiamato a ogni cambio utente.

        Returns:
            Funzione che rimuove il listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_user(self, user_id: Optional[str]):
        changed = user_id != self.user_id
        self.user_id = user_id
        if changed:
            for listener in list(self._listeners):
                listener(self)


async def require_session(session: Optional[SessionContext]) -> str:
    """
    Verifica che esista un utente attivo prima di qualsiasi parsing.

    Returns:
        user_id corrente

    Raises:
        NotAuthenticated: se la sessione manca o non è valida
    """
    if session is None or not await session.validate_session():
        raise NotAuthenticated()
    return session.get_current_user_id()
