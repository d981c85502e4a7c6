from __future__ import annotations

import enum
from dataclasses import dataclass, field

LOW_MARGIN_PERCENT = 10.0
MEDIUM_MARGIN_PERCENT = 20.0

# Company growth thresholds, Italian construction market benchmarks.
STATUS_THRESHOLDS: dict[str, float] = {
    "critical": 0.5,
    "stable": 1.5,
    "healthy": 2.5,
}


class MarginStatus(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class CompanyStatusLevel(str, enum.Enum):
    CRITICAL = "critical"
    STABLE = "stable"
    HEALTHY = "healthy"
    EXCELLENT = "excellent"


@dataclass(frozen=True, slots=True)
class SiteMargin:
    margin_value: float | None
    margin_percent: float | None
    cost_vs_revenue_percent: float | None
    status: MarginStatus


@dataclass(frozen=True, slots=True)
class CompanyStatus:
    label: str
    level: CompanyStatusLevel
    color: str


@dataclass(frozen=True, slots=True)
class HomeInsights:
    status: CompanyStatus
    growth_percent: float
    insights: dict[str, str]
    thresholds: dict[str, float] = field(default_factory=lambda: dict(STATUS_THRESHOLDS))


_UNKNOWN_MARGIN = SiteMargin(
    margin_value=None,
    margin_percent=None,
    cost_vs_revenue_percent=None,
    status=MarginStatus.UNKNOWN,
)

# Highest tier first; the first threshold the value reaches wins.
_COMPANY_STATUS_TIERS: tuple[tuple[float, CompanyStatus], ...] = (
    (STATUS_THRESHOLDS["healthy"], CompanyStatus("ALTA EFFICIENZA", CompanyStatusLevel.EXCELLENT, "indigo")),
    (STATUS_THRESHOLDS["stable"], CompanyStatus("AZIENDA SANA", CompanyStatusLevel.HEALTHY, "green")),
    (STATUS_THRESHOLDS["critical"], CompanyStatus("STABILE", CompanyStatusLevel.STABLE, "yellow")),
)
_CRITICAL_STATUS = CompanyStatus("CRITICITÀ", CompanyStatusLevel.CRITICAL, "red")

_STATUS_TEMPLATES: dict[CompanyStatusLevel, str] = {
    CompanyStatusLevel.EXCELLENT: (
        "Con una crescita del {pct}%, l'azienda opera in alta efficienza. I costi sono sotto controllo "
        "e i margini superano le aspettative del settore edile italiano."
    ),
    CompanyStatusLevel.HEALTHY: (
        "La crescita del {pct}% indica un'azienda sana. I ricavi coprono ampiamente i costi "
        "e c'è margine per investimenti strategici."
    ),
    CompanyStatusLevel.STABLE: (
        "Una crescita del {pct}% indica stabilità. L'azienda copre i costi ma il margine è limitato. "
        "Ottimizzare le ore lavorate potrebbe migliorare la situazione."
    ),
    CompanyStatusLevel.CRITICAL: (
        "Attenzione: la crescita è al {pct}%. I costi si avvicinano ai ricavi. "
        "Verificare l'incidenza della manodopera e i tempi di lavorazione."
    ),
}

_MARGIN_TEMPLATES: tuple[tuple[float, str], ...] = (
    (
        20.0,
        "Margine attuale al {margin}%. Manodopera incide per il {labor}%, materiali per il {materials}%. "
        "Ottimo equilibrio.",
    ),
    (
        10.0,
        "Margine al {margin}%. Manodopera al {labor}% e materiali al {materials}%. "
        "Buona gestione, monitorare le ore extra.",
    ),
    (
        0.0,
        "Margine ridotto al {margin}%. Manodopera incide per il {labor}%. "
        "Valutare ottimizzazione turni e acquisti materiali.",
    ),
)
_NEGATIVE_MARGIN_TEMPLATE = (
    "Margine negativo ({margin}%). I costi superano i ricavi. "
    "Urgente: rivedere preventivi e costi di manodopera ({labor}%)."
)

# Labor tiers use strict "greater than" boundaries.
_LABOR_TEMPLATES: tuple[tuple[float, str], ...] = (
    (
        70.0,
        "Manodopera al {labor}% dei costi totali, sopra la media. Media {avg}h/operaio questo mese. "
        "Valutare efficienza cantieri.",
    ),
    (
        50.0,
        "Manodopera al {labor}% dei costi. Media di {avg}h per operaio. Incidenza nella norma per il settore.",
    ),
)
_LOW_LABOR_TEMPLATE = (
    "Manodopera al {labor}% dei costi, ben contenuta. Media {avg}h/operaio. Buona ottimizzazione del personale."
)

_NO_ACTIVE_SITES_TEXT = "Nessun cantiere attivo al momento. I dati si aggiorneranno all'avvio dei lavori."


def get_site_margin_info(contract_value: float | None, total_cost: float) -> SiteMargin:
    if contract_value is None or contract_value <= 0:
        return _UNKNOWN_MARGIN

    margin_value = contract_value - total_cost
    margin_percent = margin_value / contract_value * 100
    if margin_percent < LOW_MARGIN_PERCENT:
        status = MarginStatus.LOW
    elif margin_percent < MEDIUM_MARGIN_PERCENT:
        status = MarginStatus.MEDIUM
    else:
        status = MarginStatus.HIGH

    return SiteMargin(
        margin_value=margin_value,
        margin_percent=margin_percent,
        cost_vs_revenue_percent=total_cost / contract_value * 100,
        status=status,
    )


def incidence_percent(part: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return part / total * 100


def get_company_status(growth_percent: float) -> CompanyStatus:
    for threshold, status in _COMPANY_STATUS_TIERS:
        if growth_percent >= threshold:
            return status
    return _CRITICAL_STATUS


def status_insight(level: CompanyStatusLevel, growth_percent: float) -> str:
    template = _STATUS_TEMPLATES.get(level, _STATUS_TEMPLATES[CompanyStatusLevel.STABLE])
    return template.format(pct=f"{growth_percent:.1f}")


def margin_insight(margin_percent: float, labor_percent: float, materials_percent: float) -> str:
    values = {
        "margin": f"{margin_percent:.1f}",
        "labor": f"{labor_percent:.0f}",
        "materials": f"{materials_percent:.0f}",
    }
    for threshold, template in _MARGIN_TEMPLATES:
        if margin_percent >= threshold:
            return template.format(**values)
    return _NEGATIVE_MARGIN_TEMPLATE.format(**values)


def labor_insight(labor_percent: float, monthly_hours: float, total_workers: int) -> str:
    average = monthly_hours / total_workers if total_workers > 0 else 0.0
    values = {"labor": f"{labor_percent:.0f}", "avg": f"{average:.0f}"}
    for threshold, template in _LABOR_TEMPLATES:
        if labor_percent > threshold:
            return template.format(**values)
    return _LOW_LABOR_TEMPLATE.format(**values)


def site_insight(active_sites: int, total_sites: int, sites_with_margin: int) -> str:
    if active_sites == 0:
        return _NO_ACTIVE_SITES_TEXT
    if sites_with_margin > 0:
        coverage = f" {sites_with_margin} su {active_sites} hanno un prezzo pattuito."
    else:
        coverage = " Nessun cantiere ha un prezzo pattuito. Inseriscilo per vedere i margini."
    return f"{active_sites} cantieri attivi su {total_sites} totali.{coverage}"


def generate_home_insights(
    *,
    margin_growth_percent: float | None,
    margin_percent: float | None,
    labor_percent: float,
    materials_percent: float,
    monthly_hours: float,
    total_workers: int,
    active_sites: int,
    total_sites: int,
    sites_with_margin: int,
) -> HomeInsights:
    growth_percent = margin_growth_percent or 0.0
    status = get_company_status(growth_percent)
    return HomeInsights(
        status=status,
        growth_percent=growth_percent,
        insights={
            "status": status_insight(status.level, growth_percent),
            "margin": margin_insight(margin_percent or 0.0, labor_percent, materials_percent),
            "labor": labor_insight(labor_percent, monthly_hours, total_workers),
            "sites": site_insight(active_sites, total_sites, sites_with_margin),
        },
    )
