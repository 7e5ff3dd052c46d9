"""
Taxonomie des erreurs du tunnel de paiement.

Chaque erreur porte:
- code: code stable exposé au client (invalid-argument, permission-denied, ...)
- status_code: statut HTTP rendu par le gestionnaire d'exceptions
- message: texte court et non technique, seul détail visible côté client

Le diagnostic complet reste côté serveur (logs), jamais dans la réponse.
"""
from typing import Optional


class CheckoutError(Exception):
    code = "internal"
    status_code = 500
    default_message = "Une erreur est survenue, veuillez réessayer"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CheckoutError):
    """Montant falsifié ou panier incomplet: rejeté avant tout appel Stripe."""
    code = "invalid-argument"
    status_code = 400
    default_message = "Panier invalide"


class NotFoundError(CheckoutError):
    code = "not-found"
    status_code = 404
    default_message = "Article introuvable"


class AuthError(CheckoutError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Non authentifié"


class PermissionDeniedError(AuthError):
    code = "permission-denied"
    status_code = 403
    default_message = "Famille invalide"


class FailedPreconditionError(CheckoutError):
    code = "failed-precondition"
    status_code = 409
    default_message = "Paiement non confirmé"


class CapacityExceededError(FailedPreconditionError):
    default_message = "Plus de places disponibles"

    def __init__(self, item_id: Optional[str] = None, message: Optional[str] = None):
        self.item_id = item_id
        super().__init__(message)


class InternalError(CheckoutError):
    code = "internal"
    status_code = 500


class GatewayError(InternalError):
    """Échec de création/lecture du PaymentIntent. Pas de retry automatique côté serveur."""
    status_code = 502
    default_message = "Le service de paiement est indisponible, veuillez réessayer"


class PartialFailureError(InternalError):
    """Paiement encaissé mais commande non enregistrée: réconciliation manuelle."""
    default_message = "Votre paiement a été reçu mais la commande n'a pas pu être finalisée, veuillez réessayer"


class ConsistencyError(CheckoutError):
    """Signature webhook invalide: rejet générique, sans détail de vérification."""
    code = "invalid-argument"
    status_code = 400
    default_message = "Webhook invalide"
