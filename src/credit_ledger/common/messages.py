"""User-facing message catalog, keyed by error/result code and locale."""

DEFAULT_LOCALE = "en"

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "INVALID_CODE": "Invalid code",
        "ALREADY_REDEEMED": "This code has already been used",
        "INSUFFICIENT_BALANCE": "Insufficient balance",
        "INSUFFICIENT_MINUTES": "Insufficient video minutes",
        "INSUFFICIENT_ARTICLE_CREDITS": "Insufficient article credits",
        "VALIDATION_ERROR": "Validation failed",
        "UNAUTHENTICATED": "Please sign in first",
        "FORBIDDEN": "Access denied",
        "NOT_FOUND": "Resource not found",
        "GRANT_FAILED": "Access could not be granted, no credits were charged",
        "STORAGE_UNAVAILABLE": "Service temporarily unavailable",
        "INTERNAL_ERROR": "Internal server error",
        "CODE_REDEEMED": "Code redeemed successfully",
        "ARTICLE_UNLOCKED": "Article unlocked successfully",
        "ALREADY_HAS_ACCESS": "You already have access",
        "COURSE_PURCHASED": "Course purchased successfully",
        "CODES_GENERATED": "Codes generated successfully",
    },
    "ar": {
        "INVALID_CODE": "الكود غير صالح",
        "ALREADY_REDEEMED": "تم استخدام هذا الكود مسبقاً",
        "INSUFFICIENT_BALANCE": "رصيد غير كافي",
        "INSUFFICIENT_MINUTES": "دقائق المشاهدة غير كافية",
        "INSUFFICIENT_ARTICLE_CREDITS": "رصيد المقالات غير كافي",
        "VALIDATION_ERROR": "بيانات غير صالحة",
        "UNAUTHENTICATED": "رجاء تسجيل الدخول أولاً",
        "FORBIDDEN": "غير مصرح بالوصول",
        "NOT_FOUND": "المورد غير موجود",
        "GRANT_FAILED": "تعذر منح الصلاحية ولم يتم خصم الرصيد",
        "STORAGE_UNAVAILABLE": "الخدمة غير متاحة مؤقتاً",
        "INTERNAL_ERROR": "حدث خطأ في الخادم",
        "CODE_REDEEMED": "تم استخدام الكود بنجاح",
        "ARTICLE_UNLOCKED": "تم فتح المقال بنجاح",
        "ALREADY_HAS_ACCESS": "لديك صلاحية الوصول بالفعل",
        "COURSE_PURCHASED": "تم شراء الكورس بنجاح",
        "CODES_GENERATED": "تم توليد الأكواد بنجاح",
    },
}


def get_message(code: str, locale: str = DEFAULT_LOCALE, default: str = "") -> str:
    """Look up a message, falling back to English, then to ``default``."""
    catalog = MESSAGES.get(locale) or MESSAGES[DEFAULT_LOCALE]
    if code in catalog:
        return catalog[code]
    return MESSAGES[DEFAULT_LOCALE].get(code, default or code)
