"""
YBY Leilões - pipeline de scraping de leilões de veículos.

Coleta lotes de sites de leiloeiros, normaliza em um registro canônico,
calcula o Deal Score e reconcilia com a tabela vehicles no Supabase.

Uso:
    python -m yby_scraping.run_scrape --dry-run
"""

__version__ = "1.0.0"
