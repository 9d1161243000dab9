"""
Taxonomie d'erreurs partagée par le serveur (backend) et le client (intake_client).

- ValidationError: entrée invalide (forme/valeurs), message affichable tel quel.
- GatewayError: la passerelle de paiement a refusé ou n'a pas répondu (réessayable avec une nouvelle commande).
- VerificationError: signature de paiement invalide (fatal pour la tentative).
- TransportError: échec réseau/upload (réessayable fichier par fichier).
- UserCancelled: l'utilisateur a fermé le checkout; issue normale, pas une alerte.
- InvalidTransition: transition interdite de la machine d'état de session.
- PaymentRequired: upload refusé tant qu'aucun paiement payé n'est enregistré (serveur).
- PaymentAlreadyUsed: un paiement ne couvre qu'un seul lot déposé (serveur).
"""
from typing import Iterable, Optional


class IntakeError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(IntakeError):
    status_code = 400


class GatewayError(IntakeError):
    status_code = 502


class VerificationError(IntakeError):
    status_code = 400


class TransportError(IntakeError):
    status_code = 502

    def __init__(self, message: str, failed_files: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.failed_files = list(failed_files or [])


class UserCancelled(IntakeError):
    status_code = 400

    def __init__(self, message: str = "Payment cancelled by user"):
        super().__init__(message)


class InvalidTransition(IntakeError):
    status_code = 409


class PaymentRequired(IntakeError):
    status_code = 402

    def __init__(self, message: str = "A verified payment is required before uploading files"):
        super().__init__(message)


class PaymentAlreadyUsed(IntakeError):
    status_code = 409

    def __init__(self, message: str = "This payment has already been used for an upload"):
        super().__init__(message)
