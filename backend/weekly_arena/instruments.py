"""Static catalog of tradable instruments, used to decorate analytics output."""

from typing import Literal

from pydantic import BaseModel


class InstrumentCategory(BaseModel):
    key: str
    name: str
    order: int


class Instrument(BaseModel):
    code: str
    name: str
    category: str
    full_name: str = ""
    currency: Literal["TRY", "USD", "EUR"] = "TRY"
    source: Literal["yahoo", "tefas"] = "yahoo"
    enabled: bool = True
    popular: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.code})"


INSTRUMENT_CATEGORIES: dict[str, InstrumentCategory] = {
    c.key: c
    for c in [
        InstrumentCategory(key="borsa", name="Borsa Istanbul", order=1),
        InstrumentCategory(key="doviz", name="FX", order=2),
        InstrumentCategory(key="kripto", name="Crypto", order=3),
        InstrumentCategory(key="emtia", name="Commodities", order=4),
        InstrumentCategory(key="yabanci_hisse", name="Foreign Indices", order=5),
        InstrumentCategory(key="para_piyasasi", name="Money Market Funds", order=6),
        InstrumentCategory(key="borclanma", name="Debt Funds", order=7),
        InstrumentCategory(key="altin", name="Gold Funds", order=8),
        InstrumentCategory(key="gumus", name="Silver Funds", order=9),
        InstrumentCategory(key="doviz_fonu", name="FX Funds", order=10),
        InstrumentCategory(key="eurobond", name="Eurobond Funds", order=11),
        InstrumentCategory(key="yabanci_hisse_fonu", name="Foreign Equity Funds", order=12),
        InstrumentCategory(key="arbitraj", name="Arbitrage Funds", order=13),
        InstrumentCategory(key="hisse", name="Equities (legacy)", order=99),
    ]
}

INSTRUMENTS: list[Instrument] = [
    # Yahoo Finance
    Instrument(code="XU100", name="BIST 100", category="borsa", popular=True),
    Instrument(code="XU030", name="BIST 30", category="borsa"),
    Instrument(code="XU050", name="BIST 50", category="borsa"),
    Instrument(code="XBANK", name="BIST Banks", category="borsa"),
    Instrument(code="XUSIN", name="BIST Industrials", category="borsa"),
    Instrument(code="USDTRY", name="USD/TRY", category="doviz", popular=True),
    Instrument(code="EURTRY", name="EUR/TRY", category="doviz", popular=True),
    Instrument(code="XAU", name="Gold", category="emtia", currency="USD", popular=True),
    Instrument(code="XAG", name="Silver", category="emtia", currency="USD"),
    Instrument(code="BTC", name="Bitcoin", category="kripto", currency="USD", popular=True),
    Instrument(code="ETH", name="Ethereum", category="kripto", currency="USD", popular=True),
    Instrument(code="XRP", name="Ripple", category="kripto", currency="USD"),
    Instrument(code="SPX", name="S&P 500", category="yabanci_hisse", currency="USD", popular=True),
    Instrument(code="STOXX", name="Euro Stoxx 50", category="yabanci_hisse", currency="USD"),
    Instrument(code="TSLA", name="Tesla", category="hisse", currency="USD"),
    Instrument(code="AAPL", name="Apple", category="hisse", currency="USD"),
    # TEFAS funds
    Instrument(code="NVB", name="NEO Money Market", category="para_piyasasi", source="tefas"),
    Instrument(code="DCB", name="Deniz Money Market", category="para_piyasasi", source="tefas"),
    Instrument(code="HDA", name="Hedef Arbitrage", category="arbitraj", source="tefas"),
    Instrument(code="AHU", name="Atlas Debt", category="borclanma", source="tefas"),
    Instrument(code="FPK", name="Fiba Short Term", category="borclanma", source="tefas"),
    Instrument(code="APT", name="AK Medium Term", category="borclanma", source="tefas"),
    Instrument(code="GUV", name="Garanti Long Term", category="borclanma", source="tefas"),
    Instrument(code="YKT", name="Yapi Kredi Gold", category="altin", source="tefas", popular=True),
    Instrument(code="DAS", name="Deniz FX", category="doviz_fonu", source="tefas"),
    Instrument(code="DMG", name="Deniz Silver", category="gumus", source="tefas"),
    Instrument(code="YBE", name="Yapi Kredi Eurobond", category="eurobond", currency="USD", source="tefas"),
    Instrument(code="AFA", name="AK America", category="yabanci_hisse_fonu", currency="USD", source="tefas"),
    Instrument(code="AFV", name="AK Europe", category="yabanci_hisse_fonu", currency="EUR", source="tefas"),
]

_BY_CODE = {inst.code: inst for inst in INSTRUMENTS}


def get_enabled_instruments() -> list[Instrument]:
    return [inst for inst in INSTRUMENTS if inst.enabled]


def get_instrument_by_code(code: str) -> Instrument | None:
    return _BY_CODE.get(code)


def get_instruments_by_category(category: str) -> list[Instrument]:
    return [inst for inst in get_enabled_instruments() if inst.category == category]


def get_popular_instruments() -> list[Instrument]:
    return [inst for inst in get_enabled_instruments() if inst.popular]


def search_instruments(query: str) -> list[Instrument]:
    """Case-insensitive match on code, name, full name or category."""
    needle = query.strip().lower()
    if not needle:
        return get_enabled_instruments()

    def hit(inst: Instrument) -> bool:
        category = INSTRUMENT_CATEGORIES.get(inst.category)
        haystack = [inst.code, inst.name, inst.full_name, inst.category]
        if category:
            haystack.append(category.name)
        return any(needle in value.lower() for value in haystack)

    return [inst for inst in get_enabled_instruments() if hit(inst)]
