"""SPARQL query templates for the Wikidata Query Service."""

from __future__ import annotations

from typing import Iterable


ENTITY_PREFIX = "http://www.wikidata.org/entity/"

SELECT_CLAUSE = (
    "SELECT DISTINCT ?item ?itemLabel ?itemDescription ?place ?placeLabel ?country "
    "?countryLabel ?countryIso ?countryQid ?startDate ?end ?qid ?coord"
)

# Country comes only from place (P276) or administrative entity (P131), never item P17.
COUNTRY_BLOCK = """
  OPTIONAL { ?item wdt:P276 ?place. ?place wdt:P17 ?countryFromPlace. }
  OPTIONAL { ?item wdt:P131 ?placeAdmin. ?placeAdmin wdt:P17 ?countryFromAdmin. }
  BIND(COALESCE(?countryFromPlace, ?countryFromAdmin) AS ?country)
  BIND(STRAFTER(STR(?country), '%(prefix)s') AS ?countryQid)
  OPTIONAL { ?country wdt:P297 ?countryIso. }
  OPTIONAL { ?country rdfs:label ?countryLabel FILTER(LANG(?countryLabel) = 'en') }
  FILTER(BOUND(?country))
""" % {"prefix": ENTITY_PREFIX}

CANDIDATE_BLOCK = """
  { ?item wdt:P31/wdt:P279* wd:Q10931. }
  UNION
  { ?item schema:description ?desc .
    FILTER(LANG(?desc) = 'en' &&
      (CONTAINS(LCASE(?desc),'revolution') ||
       CONTAINS(LCASE(?desc),'uprising') ||
       CONTAINS(LCASE(?desc),'rebellion') ||
       CONTAINS(LCASE(?desc),'insurgency') ||
       CONTAINS(LCASE(?desc),'coup') ||
       CONTAINS(LCASE(?desc),'protest')))
  }
"""

DETAIL_BLOCK = """
  OPTIONAL { ?item wdt:P580 ?s. }
  OPTIONAL { ?item wdt:P585 ?p. }
  BIND(COALESCE(?s, ?p) AS ?startDate)
  OPTIONAL { ?item wdt:P582 ?end. }
  OPTIONAL { ?item schema:description ?itemDescription FILTER(LANG(?itemDescription) = 'en') }
  OPTIONAL { ?item wdt:P625 ?coord. }
  BIND(STRAFTER(STR(?item), '%(prefix)s') AS ?qid)
  SERVICE wikibase:label { bd:serviceParam wikibase:language "[AUTO_LANGUAGE],en". }
""" % {"prefix": ENTITY_PREFIX}


def paged_query(limit: int, offset: int, min_year: int) -> str:
    """Candidate events starting in or after ``min_year``, one page."""
    return (
        f"{SELECT_CLAUSE} WHERE {{"
        f"{COUNTRY_BLOCK}{CANDIDATE_BLOCK}{DETAIL_BLOCK}"
        f"  FILTER(BOUND(?startDate) && YEAR(?startDate) >= {int(min_year)})\n"
        "}\n"
        "ORDER BY ?countryLabel ?startDate ?qid\n"
        f"LIMIT {int(limit)}\n"
        f"OFFSET {int(offset)}"
    )


def identifier_query(qids: Iterable[str]) -> str:
    """Details for an explicit set of items, no candidate or year filter."""
    values = " ".join(f"wd:{qid}" for qid in qids)
    return (
        f"{SELECT_CLAUSE} WHERE {{\n"
        f"  VALUES ?item {{ {values} }}\n"
        f"{COUNTRY_BLOCK}{DETAIL_BLOCK}"
        "}"
    )
