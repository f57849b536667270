"""User-facing (Hungarian) error messages returned by the public API."""

PAYLOAD_TOO_LARGE = "A kérés túl nagy."
SIGNATURE_INVALID = "A fizetési adatok ellenőrzése nem sikerült."
PAYMENT_SYSTEM_UNAVAILABLE = "A fizetési rendszer jelenleg nem elérhető."
EMAIL_MISSING_IN_PAYMENT = "Az email cím nem található a fizetési adatokban."
EMAIL_REQUIRED = "Az email cím megadása kötelező."
EMAIL_TOO_LONG = "Az email cím túl hosszú."
EMAIL_INVALID = "Az email cím formátuma nem megfelelő."
ACCESS_ACTIVATION_FAILED = "A hozzáférés aktiválása jelenleg nem sikerült."
PAYMENT_PROCESSING_FAILED = "A fizetési feldolgozás jelenleg nem sikerült."
CHECKOUT_UNAVAILABLE = "A fizetési folyamat jelenleg nem elérhető."
TOO_MANY_REQUESTS = "Túl sok kérés. Kérjük, próbálja újra később."
DATA_UNAVAILABLE = "Az adatok jelenleg nem elérhetők."
ACCESS_CHECK_UNAVAILABLE = "A hozzáférés ellenőrzése jelenleg nem elérhető."
ACCESS_REQUIRED = "A számításokhoz érvényes hozzáférés szükséges."
INVALID_YEAR_RANGE = "A megadott időszakra nincs elérhető adat."
INTERNAL_ERROR = "Belső szerver hiba"
SERVICE_UNAVAILABLE = "A szolgáltatás átmenetileg nem elérhető."
INVALID_INPUT = "A megadott adatok érvénytelenek. Kérjük, ellenőrizze a mezőket."
