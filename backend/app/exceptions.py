"""
Erreurs métier du moteur de présence.

Toutes héritent de ValueError (comme les services existants) et portent
un code stable + le statut HTTP que les routers renvoient.
Aucune n'est fatale pour le processus : elles remontent à l'appelant.
"""


class AttendanceError(ValueError):
    """Base des erreurs récupérables du moteur."""

    code = "attendance_error"
    status_code = 400
    default_message = "Erreur de présence."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidSchedule(AttendanceError):
    code = "invalid_schedule"
    default_message = "Planification invalide pour ce check de localisation."


class Forbidden(AttendanceError):
    code = "forbidden"
    status_code = 403
    default_message = "Action non autorisée pour ce rôle."


class SessionNotFound(AttendanceError):
    code = "session_not_found"
    status_code = 404
    default_message = "Check de localisation introuvable."


class NoActiveCheckHere(AttendanceError):
    code = "no_active_check_here"
    status_code = 404
    default_message = "Aucun check de localisation actif à cet endroit."


class SessionEnded(AttendanceError):
    code = "session_ended"
    status_code = 409
    default_message = "La session est terminée : les absents ont déjà été marqués."


class MustBeInside(AttendanceError):
    code = "must_be_inside"
    status_code = 409
    default_message = "Vous devez être dans la zone pour pointer l'entrée."


class MustLeaveToExit(AttendanceError):
    code = "must_leave_to_exit"
    status_code = 409
    default_message = "Vous êtes encore dans la zone : quittez-la pour pointer la sortie."


class WaitBeforeAutoExit(AttendanceError):
    code = "wait_before_auto_exit"
    status_code = 409

    def __init__(self, minutes_left: int):
        self.minutes_left = minutes_left
        super().__init__(
            f"Sortie détectée : restez hors de la zone encore {minutes_left} min "
            "pour valider le pointage de sortie."
        )


class UnableToRecordPunch(AttendanceError):
    code = "unable_to_record_punch"
    status_code = 409
    default_message = "Impossible d'enregistrer le pointage : entrée et sortie déjà enregistrées."
