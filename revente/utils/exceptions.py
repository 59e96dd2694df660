# utils/exceptions.py
from __future__ import annotations


class ReventeError(Exception):
    """Erreur applicative : jamais fatale, l'appelant revient à un état interactif."""
    code = "error"
    message = "Erreur inattendue"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def user_message(self) -> str:
        return str(self)


class NotFound(ReventeError):
    code = "not-found"
    message = "Élément introuvable"


class ValidationError(ReventeError):
    """Contrôles de formulaire ; `errors` = {champ: message}."""
    code = "validation"
    message = "Formulaire invalide"

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()) or self.message)


# —— Authentification —— #
class AuthError(ReventeError):
    code = "auth/error"
    message = "Erreur d'authentification"


class EmailInUse(AuthError):
    code = "auth/email-already-in-use"
    message = "Cet e-mail est déjà utilisé"


class WeakPassword(AuthError):
    code = "auth/weak-password"
    message = "Le mot de passe doit contenir au moins 6 caractères"


class InvalidEmail(AuthError):
    code = "auth/invalid-email"
    message = "E-mail invalide"


class UserNotFound(AuthError):
    code = "auth/user-not-found"
    message = "Utilisateur non trouvé"


class WrongPassword(AuthError):
    code = "auth/wrong-password"
    message = "Mot de passe incorrect"


class TooManyAttempts(AuthError):
    code = "auth/too-many-login-attempts"
    message = "Trop de tentatives, réessayez plus tard"


# —— Stockage (local ou distant) —— #
class StorageError(ReventeError):
    code = "storage/error"
    message = "Impossible d'enregistrer les données"


class Unavailable(StorageError):
    code = "storage/unavailable"
    message = "Service distant injoignable"


class PermissionDenied(StorageError):
    code = "storage/permission-denied"
    message = "Accès refusé"


class QuotaExceeded(StorageError):
    code = "storage/quota-exceeded"
    message = "Espace de stockage local saturé"


class DataImportError(ReventeError):
    code = "import/invalid"
    message = "Fichier d'import invalide"
