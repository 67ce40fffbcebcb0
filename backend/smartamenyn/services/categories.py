"""Category classification.

Maps store-specific department names and free-text product names onto the
fixed taxonomy shown by the meal-planning app.
"""

import re
from typing import Literal

StandardCategory = Literal[
    "frukt-gront",
    "mejeri",
    "kott-chark",
    "fisk",
    "brod-bageri",
    "fryst",
    "skafferi",
    "dryck",
    "godis-snacks",
    "hygien-hushall",
    "ovrigt",
]

DEFAULT_CATEGORY: StandardCategory = "ovrigt"

CATEGORY_LABELS: dict[str, str] = {
    "frukt-gront": "Frukt & Grönt",
    "mejeri": "Mejeri & Ost",
    "kott-chark": "Kött & Chark",
    "fisk": "Fisk & Skaldjur",
    "brod-bageri": "Bröd & Bageri",
    "fryst": "Fryst",
    "skafferi": "Skafferi",
    "dryck": "Dryck",
    "godis-snacks": "Godis & Snacks",
    "hygien-hushall": "Hygien & Hushåll",
    "ovrigt": "Övrigt",
}

# ---------------------------------------------------------------------------
# Department tables
# ---------------------------------------------------------------------------

# ICA and Hemköp label their departments the same way.
_GROCERY_CATEGORY_MAP: dict[str, StandardCategory] = {
    "färskvaror": "kott-chark",
    "kött": "kott-chark",
    "chark": "kott-chark",
    "fågel": "kott-chark",
    "kyckling": "kott-chark",
    "mejeri": "mejeri",
    "ost": "mejeri",
    "ägg": "mejeri",
    "frukt": "frukt-gront",
    "grönt": "frukt-gront",
    "grönsaker": "frukt-gront",
    "bär": "frukt-gront",
    "fisk": "fisk",
    "skaldjur": "fisk",
    "bröd": "brod-bageri",
    "bageri": "brod-bageri",
    "kex": "brod-bageri",
    "fryst": "fryst",
    "djupfryst": "fryst",
    "glass": "fryst",
    "skafferi": "skafferi",
    "skafferivaror": "skafferi",
    "pasta": "skafferi",
    "ris": "skafferi",
    "konserv": "skafferi",
    "dryck": "dryck",
    "läsk": "dryck",
    "vatten": "dryck",
    "juice": "dryck",
    "kaffe": "dryck",
    "te": "dryck",
    "godis": "godis-snacks",
    "snacks": "godis-snacks",
    "chips": "godis-snacks",
    "choklad": "godis-snacks",
    "hem": "hygien-hushall",
    "fritid": "hygien-hushall",
    "hygien": "hygien-hushall",
    "hushåll": "hygien-hushall",
    "städ": "hygien-hushall",
    "tvätt": "hygien-hushall",
    "djur": "ovrigt",
    "barn": "ovrigt",
}

_COOP_CATEGORY_MAP: dict[str, StandardCategory] = {
    **_GROCERY_CATEGORY_MAP,
    "kött, chark & fågel": "kott-chark",
    "mejeri & ägg": "mejeri",
    "frukt & grönsaker": "frukt-gront",
    "fisk & skaldjur": "fisk",
    "bröd & kakor": "brod-bageri",
    "frys": "fryst",
    "dryck & juice": "dryck",
    "godis & snacks": "godis-snacks",
    "hem & hushåll": "hygien-hushall",
    "skönhet & hygien": "hygien-hushall",
}

_LIDL_CATEGORY_MAP: dict[str, StandardCategory] = {
    **_GROCERY_CATEGORY_MAP,
    "färskt kött": "kott-chark",
    "mejerivaror": "mejeri",
    "frukt och grönt": "frukt-gront",
    "bageri och bröd": "brod-bageri",
    "frysvaror": "fryst",
    "drycker": "dryck",
    "sötsaker": "godis-snacks",
    "drogeri": "hygien-hushall",
}

CHAIN_CATEGORY_MAPS: dict[str, dict[str, StandardCategory]] = {
    "ica": _GROCERY_CATEGORY_MAP,
    "hemkop": _GROCERY_CATEGORY_MAP,
    "coop": _COOP_CATEGORY_MAP,
    "lidl": _LIDL_CATEGORY_MAP,
}

# ---------------------------------------------------------------------------
# Product-name keywords, tried in order
# ---------------------------------------------------------------------------

_KEYWORD_PATTERNS: list[tuple[re.Pattern[str], StandardCategory]] = [
    (
        # No word boundaries: matches compounds such as "kycklingfilé".
        re.compile(
            r"(kött|fläsk|lamm|kyckling|fågel|korv|bacon|skinka|salami|leverpastej|"
            r"falukorv|prinskorv|hamburgare|köttbullar|färs|biff|entrecote|filé|"
            r"schnitzel|kassler|kycklingbröst|fläskfilé|nötfärs|blandfärs|högrev|"
            r"revben|kotlett|köttfärs|pulled|brisket|oxfilé|fläskkotlett|kalkon|"
            r"anka|gris|griskött|nötkött|lammkött)"
        ),
        "kott-chark",
    ),
    (
        re.compile(
            r"\b(mjölk|fil|yoghurt|grädde|créme|ost|smör|margarin|ägg|kvarg|keso|feta|"
            r"mozzarella|cheddar|brie|parmesan|gouda|edamer|grädd|crème|mascarpone|"
            r"ricotta|halloumi|västerbotten|herrgård|prästost|gruyère|emmental|"
            r"philadelph|laktosfri)\b"
        ),
        "mejeri",
    ),
    (
        re.compile(
            r"\b(äpple|päron|banan|apelsin|citron|lime|vindruva|melon|mango|ananas|"
            r"avokado|tomat|gurka|paprika|lök|vitlök|morot|potatis|sallad|spenat|"
            r"broccoli|blomkål|zucchini|aubergine|svamp|champinjon|dill|persilja|"
            r"basilika|örter|kål|vitkål|rödkål|purjolök|selleri|rädisa|rädisor|"
            r"ruccola|pak choi|bönor|ärtor|majs|sparris|kronärtskock|fänkål|"
            r"rotselleri|palsternacka|jordärtskock|sötpotatis|squash|pumpa|"
            r"cantaloupe|nektarin|persika|aprikos|plommon|kiwi|granatäpple|fikon|"
            r"dadel|passionsfrukt|papaya|kokos|jordgubb|hallon|blåbär|björnbär)\b"
        ),
        "frukt-gront",
    ),
    (
        re.compile(
            r"\b(lax|torsk|sill|makrill|tonfisk|räkor|krabba|musslor|fiskpinnar|fisk|"
            r"skaldjur|kaviar|rom|alaska|hoki|sejlax|rödspätta|kolja|gös|abborre|"
            r"öring|röding|sej|pangasius|tilapia)\b"
        ),
        "fisk",
    ),
    (
        re.compile(
            r"\b(bröd|limpa|fralla|bulle|croissant|kaka|tårta|muffins|kex|skorpa|"
            r"knäckebröd|tunnbröd|tortilla|pita|munkar|munk|donut|wienerbröd|"
            r"kanelbulle|kardemumma|vetebröd|rågbröd|ciabatta|baguette|focaccia|"
            r"naan|pizza\s*deg|deg|bakelse|kanel|mazarin|prinsesstårta|kladdkaka|"
            r"chokladboll|dammsugare)\b"
        ),
        "brod-bageri",
    ),
    (
        re.compile(r"\b(fryst|frysta|glass|pizza|pommes|frityrstekt|frysdisk|djupfryst)\b"),
        "fryst",
    ),
    (
        re.compile(
            r"\b(pasta|ris|spagetti|makaroner|nudlar|bulgur|couscous|quinoa|linser|"
            r"bönor|kikärtor|krossade tomater|passerade|ketchup|senap|majonnäs|soja|"
            r"olja|vinäger|mjöl|socker|salt|kryddor|buljong|fond|müsli|flingor|"
            r"havregryn|cornflakes|granola|marmelad|sylt|honung|nutella|"
            r"jordnötssmör|konserv|inlagd|oliver|kapris|pesto|tomatpuré|kokosmjölk|"
            r"sambal|curry|tandoori)\b"
        ),
        "skafferi",
    ),
    (
        re.compile(
            r"\b(läsk|cola|fanta|sprite|saft|juice|vatten|mineralvatten|kaffe|te|"
            r"energidryck|öl|vin|cider|dricka|dryck|lemonad|nektar|smoothie|"
            r"milkshake|apelsinjuice|äppeljuice|must|julmust|påskmust|tonic|"
            r"ginger\s*ale|redbull|monster|nocco)\b"
        ),
        "dryck",
    ),
    (
        re.compile(
            r"\b(godis|choklad|chips|popcorn|nötter|mandlar|russin|lakrits|tuggummi|"
            r"lösgodis|kola|marshmallow|snacks|marabou|fazer|ahlgrens|bilar|gott|"
            r"sötsaker|kexchoklad|daim|toblerone|twix|snickers|bounty|geisha|plopp|"
            r"jordnöt|cashew|pistasch|hasselnöt|valnöt)\b"
        ),
        "godis-snacks",
    ),
    (
        re.compile(
            r"\b(tvättmedel|diskmedel|städ|toalettpapper|hushållspapper|servett|påse|"
            r"folie|plastpåse|tvål|schampo|balsam|tandkräm|deodorant|blöjor|"
            r"rengöring|allrengöring|fönsterputs|wc|toalett|sköljmedel|parfym|"
            r"hudkräm|handkräm|duschkräm|ansiktskräm|lotion|rakning|rakblad|"
            r"munskölj|tandborste|tops|bomull|bindor|tamponger|trosskydd)\b"
        ),
        "hygien-hushall",
    ),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def map_category(store_category: str | None, chain: str) -> StandardCategory:
    """Map a store department name to a standard category.

    Exact key first, then containment in either direction. When several keys
    contain (or are contained in) the department name the longest key wins,
    so "fisk & skaldjur" beats "fisk" and "skafferivaror" beats "skafferi".
    """
    if not store_category:
        return DEFAULT_CATEGORY

    normalized = store_category.lower().strip()
    if not normalized:
        return DEFAULT_CATEGORY

    table = CHAIN_CATEGORY_MAPS.get(chain, _GROCERY_CATEGORY_MAP)
    if normalized in table:
        return table[normalized]

    best_key = None
    for key in table:
        if key in normalized or normalized in key:
            if best_key is None or len(key) > len(best_key):
                best_key = key
    return table[best_key] if best_key is not None else DEFAULT_CATEGORY


def classify_by_name(product_name: str | None) -> StandardCategory:
    """Classify a product from keywords in its name."""
    if not product_name:
        return DEFAULT_CATEGORY
    name = product_name.lower()
    for pattern, category in _KEYWORD_PATTERNS:
        if pattern.search(name):
            return category
    return DEFAULT_CATEGORY


def classify(
    store_category: str | None, product_name: str | None, chain: str
) -> StandardCategory:
    """Store department first, product-name keywords as fallback."""
    if store_category:
        mapped = map_category(store_category, chain)
        if mapped != DEFAULT_CATEGORY:
            return mapped
    return classify_by_name(product_name)
