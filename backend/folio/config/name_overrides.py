from __future__ import annotations


# Display names for listings where providers return nothing useful.
NAME_OVERRIDES: dict[str, dict[str, str]] = {
    "XWAR": {
        "ABE": "AB S.A.",
        "BFT": "Benefit Systems S.A.",
        "CBF": "Cyber_Folks S.A.",
        "CDR": "CD Projekt S.A.",
        "COG": "Cognor Holding S.A.",
        "DIG": "Digital Network S.A.",
        "ETFBS80TR": "Beta sWIG80TR Portfelowy FIZ ETF",
        "GPW": "Gielda Papierow Wartosciowych w Warszawie S.A.",
        "KGH": "KGHM Polska Miedz S.A.",
        "LPP": "LPP S.A.",
        "PAS": "Passus S.A.",
        "PEO": "Bank Polska Kasa Opieki S.A.",
        "PGE": "PGE Polska Grupa Energetyczna S.A.",
        "PKN": "Orlen S.A.",
        "PZU": "Powszechny Zaklad Ubezpieczen S.A.",
        "SNT": "Synektik S.A.",
        "XTB": "XTB S.A.",
    },
    "XETR": {
        "P500": "Invesco S&P 500 UCITS ETF",
        "SPYL": "SPDR S&P 500 UCITS ETF (Acc)",
        "VUAA": "Vanguard S&P 500 UCITS ETF (USD) Accumulating",
    },
    "XLON": {
        "EGLN": "iShares Physical Gold ETC",
    },
}


def get_name_override(market: str, ticker: str) -> str | None:
    market_map = NAME_OVERRIDES.get(market.strip().upper())
    if not market_map:
        return None
    return market_map.get(ticker.strip().upper())
