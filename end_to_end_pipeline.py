from __future__ import annotations

import os
import time
import logging
import argparse
import pandas as pd

from umls_mapper.loader import RRFFile
from umls_mapper.concepts import ConceptStore
from umls_mapper.crossmap import mappings_to_frame

DEFAULT_MRCONSO = os.path.join("META", "MRCONSO.RRF")
DEFAULT_OUTPUT_CSV = "mappings.csv"

logger = logging.getLogger("umls_mapper.pipeline")


def read_codes(path: str | None) -> list[str]:
    """Codes from the CODE column of a CSV/Excel file (first column if absent)."""
    if not path:
        return []
    if not os.path.exists(path):
        raise FileNotFoundError(f"Codes file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    if ext in (".xlsx", ".xls"):
        df = pd.read_excel(path, dtype=str)
    elif ext == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported codes file type: {path}")

    # locate the code column (case-insensitive)
    col_map = {c.lower(): c for c in df.columns}
    code_col = col_map.get("code") or list(df.columns)[0]
    return [c.strip() for c in df[code_col].astype(str) if c.strip()]


def main():
    parser = argparse.ArgumentParser(description="Map codes between two UMLS sources via shared CUIs")
    parser.add_argument("--mrconso", default=DEFAULT_MRCONSO, help="Path to MRCONSO.RRF (default: META/MRCONSO.RRF)")
    parser.add_argument("--from-source", required=True, help="Source to map from (SAB), e.g. SNOMEDCT_US")
    parser.add_argument("--to-source", required=True, help="Source to map to (SAB), e.g. ICD10CM")
    parser.add_argument("--codes", default=None, help="Optional CSV/Excel of from-source codes (default: all codes)")
    parser.add_argument("--outcsv", default=DEFAULT_OUTPUT_CSV, help="Output CSV (default: mappings.csv)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    t0 = time.time()
    logger.info(f"Opening {args.mrconso}")
    store = ConceptStore(RRFFile(args.mrconso))
    logger.info(f"Concept store ready ({store.table_name}). Build time: {time.time() - t0:.2f}s")

    from_codes = read_codes(args.codes)
    logger.info(f"Mapping {len(from_codes) or 'all'} {args.from_source} codes to {args.to_source}…")

    start_map = time.time()
    mappings = store.cross_map(args.from_source, from_codes, args.to_source, [])
    out_df = mappings_to_frame(mappings)
    logger.info(f"{len(out_df)} mappings. Mapping time: {time.time() - start_map:.1f}s")

    out_df.to_csv(args.outcsv, index=False, encoding="utf-8-sig")
    logger.info(f"Wrote CSV → {args.outcsv}")


if __name__ == "__main__":
    main()
