"""Fixed outbound texts. Everything the bot says on its own lives here."""

GREETING = (
    "Hola, soy AntonIA Santos, su asesor en línea de NORBOY. 👋\n"
    "Estoy aquí para resolver sus dudas sobre el proceso Elegimos Juntos 2026-2029."
)

MENU = (
    "Por favor seleccione una opción:\n\n"
    "*1.* Elegimos Juntos 2026-2029\n"
    "*2.* Servicio de crédito\n"
    "*3.* Cuentas de ahorro\n"
    "*4.* Otras consultas"
)

MENU_INVALID_OPTION = "No reconocí esa opción. Responda con el número de la opción (1 a 4)."

CONSENT_PROMPT = (
    "Antes de continuar, le informamos que NORBOY tratará sus datos personales de acuerdo "
    "con su política de tratamiento de datos.\n\n"
    "¿Acepta el tratamiento de sus datos personales?\n"
    "*1.* Sí, acepto\n"
    "*2.* No acepto"
)

CONSENT_INVALID_ANSWER = "Por favor responda *1* (Sí, acepto) o *2* (No acepto)."

HOW_CAN_WE_HELP = "Gracias, sumercé. ¿En qué le podemos servir?"

ADVISOR_HANDOFF = (
    "Comprendo, sumercé. 👩‍💼\n"
    "El asesor de NORBOY encargado de este tema le atenderá en breve."
)

ESCALATION = (
    "Entiendo, sumercé. 👨‍💼\n\n"
    "Un asesor de NORBOY le atenderá en breve.\n"
    "Por favor, espere un momento mientras conectamos."
)

LOW_CONFIDENCE = "Estamos verificando esa información. Un asesor le contestará en breve."

FALLBACK = "Su mensaje se procesará cuanto antes. Un asesor de NORBOY le atenderá en breve."

OUT_OF_HOURS = (
    "Nuestro horario de atención ha finalizado. Su mensaje será atendido el siguiente "
    "día hábil. Gracias por su comprensión."
)

FLOW_CANCELLED = "Proceso cancelado. Escriba *menu* cuando quiera volver a empezar."
