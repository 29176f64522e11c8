"""
Regulatory ledgers kept by the notary (UU No. 2 Tahun 2014, Pasal 58).

- Repertorium: chronological register of deeds, numbered per year and per month.
- Klapper: alphabetical index of the parties (penghadap) appearing in those deeds.
"""
