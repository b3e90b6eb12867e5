from __future__ import annotations

from typing import List, Sequence

from .catalog import MatchCandidate

RESET_TOKEN = "000"

CONTINUED_PREFIX = "(continuación...)\n\n"
CONTINUES_SUFFIX = "\n\n(continúa...)"

# ----------------------------
# Menus
# ----------------------------
MAIN_MENU = (
    "👋 ¿Qué deseas hacer?\n"
    "1️⃣ Hacer un nuevo pedido (paso a paso)\n"
    "2️⃣ Modificar un pedido viejo\n"
    "3️⃣ Nuevo pedido rápido"
)

ADD_ANOTHER_MENU = (
    "¿Qué deseas hacer ahora?\n"
    "1️⃣ Añadir otro producto\n"
    "2️⃣ Finalizar productos\n"
    "3️⃣ Eliminar producto"
)

ORDER_MENU = (
    "¿Deseas?\n"
    "0️⃣ Cancelar pedido\n"
    "1️⃣ Añadir otro producto\n"
    "2️⃣ Eliminar un producto\n"
    "3️⃣ Finalizar pedido\n"
    "4️⃣ Modificar dirección"
)

NO_MATCH_MENU = (
    "❌ No se encontró ninguna coincidencia.\n"
    "¿Qué deseas hacer?\n"
    "1️⃣ Buscar otra vez\n"
    "2️⃣ Escribir producto manual"
)

NOTE_MENU = "🗒 ¿Quieres hacer una nota?\n1️⃣ Sí\n2️⃣ No"

EDIT_MENU = (
    "¿Qué deseas modificar?\n"
    "1️⃣ Modificar productos\n"
    "2️⃣ Modificar fecha\n"
    "3️⃣ Modificar dirección\n"
    "4️⃣ Eliminar pedido"
)

EDIT_PRODUCTS_MENU = (
    "¿Qué operación deseas realizar?\n"
    "1️⃣ Agregar producto\n"
    "2️⃣ Modificar cantidad\n"
    "3️⃣ Eliminar producto"
)

CONTINUE_EDIT_MENU = "1️⃣ Seguir editando\n2️⃣ Terminar"

QUICK_ORDER_HELP = (
    "📝 Envía el pedido completo en este formato:\n\n"
    "Nombre del Cliente\n"
    "* Producto1 cantidad\n"
    "* Producto2 cantidad\n"
    "Dirección (opcional)\n\n"
    "Ejemplo:\n"
    "A&W Truck Service\n"
    "* Paleta de Mistyk 1\n"
    "* Delo 4\n"
    "* Rotella T4 8\n"
    "5401 Bernal Dr, Dallas, TX 75212"
)

# ----------------------------
# Single prompts
# ----------------------------
ASK_CUSTOMER = "📝 ¿Cuál es el nombre del cliente?"
ASK_PRODUCT = "📦 Escribe el nombre del producto:"
ASK_PRODUCT_AGAIN = "📦 Escribe el nombre del producto otra vez:"
ASK_NEXT_PRODUCT = "📦 Escribe el nombre del próximo producto:"
ASK_PRODUCT_WITH_QTY = "📦 Escribe el producto y la cantidad (ej. Delo 400 4):"
ASK_DATE = "🗓 ¿Cuál es la fecha de despacho? (MM/DD)"
ASK_NEW_DATE = "🗓 Ingresa la nueva fecha de despacho (MM/DD):"
ASK_NOTE = "✍️ Escribe tu nota:"
ASK_ADDRESS = "📍 Escribe la dirección para este pedido:"
ASK_NEW_QUANTITY = "Ingresa la nueva cantidad:"

RESET_DONE = "🔄 Bot reiniciado."
ORDER_SAVED = "✅ Pedido guardado con éxito. Puedes iniciar otro pedido enviando un nuevo mensaje."
ORDER_CANCELLED = "❌ Pedido cancelado. Puedes iniciar uno nuevo cuando quieras."
ORDER_DELETED = "✅ Pedido eliminado correctamente"
EDIT_FINISHED = "✅ Modificaciones finalizadas"
NO_ORDERS = "❌ No tienes pedidos anteriores para modificar."

# ----------------------------
# Errors
# ----------------------------
INVALID_OPTION = "❌ Opción inválida. Elige una de estas opciones:"
INVALID_QUANTITY = "❌ Por favor ingresa una cantidad válida (solo números mayores a 0)."
INVALID_DATE = "❌ Fecha inválida. Usa el formato MM/DD."
INVALID_SELECTION = "❌ Selección inválida."
INVALID_LINE = "❌ Número de producto inválido."
EMPTY_TEXT = "❌ Escribe un texto, por favor."
NO_LINES = "⚠️ No hay productos en el pedido. Añade al menos uno."
LAST_LINE = "⚠️ El pedido debe tener al menos un producto. Para quitarlo todo, elimina el pedido."
QUICK_TOO_SHORT = "❌ Formato inválido. Necesito al menos el nombre del cliente y un producto."
QUICK_NO_ITEMS = "❌ No se encontraron productos válidos. Cada producto debe empezar con *."
STORE_FAILED = "❌ No se pudo completar la operación. Intenta nuevamente."
SESSION_BROKEN = "❌ Ocurrió un error con tu sesión. Empecemos de nuevo."


def invalid_option(menu: str) -> str:
    return f"{INVALID_OPTION}\n{menu}"


def candidate_list(candidates: Sequence[MatchCandidate]) -> str:
    return "\n".join(f"{i}. {c.item.memo}" for i, c in enumerate(candidates, start=1))


def options_found(candidates: Sequence[MatchCandidate], query: str = "") -> str:
    head = f'🔍 Opciones encontradas para "{query}":' if query else "🔍 Opciones encontradas:"
    return (
        f"{head}\n{candidate_list(candidates)}\n\n"
        "Selecciona el número del producto correcto o escribe una nueva búsqueda."
    )


def no_results_keep_list(query: str, candidates: Sequence[MatchCandidate]) -> str:
    return f'❌ Sin resultados para "{query}".\n\n' + options_found(candidates)


def unmatched_warning(names: Sequence[str]) -> str:
    if not names:
        return ""
    listed = "\n".join(f"• {n}" for n in names)
    return (
        "\n\n⚠️ Los siguientes productos no se encontraron en el catálogo:\n"
        f"{listed}\nSe guardaron con el nombre proporcionado."
    )


# ----------------------------
# Outbound splitting
# ----------------------------
def split_message(text: str, max_length: int = 4000) -> List[str]:
    """
    Split a long reply at line breaks only.

    Every part but the first is marked as a continuation, every part but the
    last announces that more follows. A single line longer than max_length is
    sent whole rather than cut.
    """
    if len(text) <= max_length:
        return [text]

    parts: List[str] = []
    current = ""
    for line in text.split("\n"):
        if current and len(current) + len(line) + 1 > max_length:
            parts.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        parts.append(current)

    out: List[str] = []
    for i, part in enumerate(parts):
        if i > 0:
            part = CONTINUED_PREFIX + part
        if i < len(parts) - 1:
            part = part + CONTINUES_SUFFIX
        out.append(part)
    return out
