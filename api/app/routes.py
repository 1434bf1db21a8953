"""Endpoints de l'API : écritures, soldes, états financiers, lettrage, rapprochement bancaire."""

from __future__ import annotations

import datetime
import logging
from io import BytesIO

from fastapi import APIRouter, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from syscohada_ledger.engine.journal import determine_journal
from syscohada_ledger.exporters.excel import export_to_bytes
from syscohada_ledger.models import (
    ConfigError,
    ConflictError,
    IntegrityError,
    LedgerError,
    NoResultError,
    NotFoundError,
    ParseError,
    Period,
    UnavailableError,
    ValidationError,
)
from syscohada_ledger.parsers import BankStatementParser
from syscohada_ledger.pipeline import PipelineOrchestrator

from .schemas import (
    AccountUpsert,
    AutoMatchRequest,
    EntryCreate,
    LettrageAutoRequest,
    LettrageRequest,
    ManualMatchRequest,
    ReverseRequest,
    SessionCreate,
    StatementImport,
)
from .serializers import (
    serialize_account,
    serialize_anomaly,
    serialize_balance,
    serialize_entry,
    serialize_group,
    serialize_line,
    serialize_match,
    serialize_proposal,
    serialize_reconciliation_stats,
    serialize_session,
    serialize_statement,
    serialize_statement_line,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _to_http(e: LedgerError) -> HTTPException:
    """Traduit une erreur métier en réponse HTTP."""
    if isinstance(e, (ValidationError, ParseError, NoResultError)):
        detail: object = str(e)
        if isinstance(e, ValidationError) and e.ecart is not None:
            detail = {"message": str(e), "ecart": e.ecart}
        return HTTPException(status_code=422, detail=detail)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, UnavailableError):
        logger.error("Stockage indisponible : %s", e)
        return HTTPException(status_code=503, detail="Stockage indisponible")
    if isinstance(e, IntegrityError):
        logger.error("Incohérence comptable : %s", e)
        return HTTPException(status_code=500, detail={"message": str(e), "ecart": e.ecart})
    if isinstance(e, ConfigError):
        logger.error("Erreur de configuration : %s", e)
        return HTTPException(status_code=500, detail="Erreur de configuration interne")
    logger.error("Erreur métier non prévue : %s", e)
    return HTTPException(status_code=500, detail="Erreur interne")


def _period(
    exercice: str | None,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
) -> Period:
    """Période explicite (date_debut/date_fin) ou exercice civil."""
    try:
        if date_debut is not None and date_fin is not None:
            return Period(date_debut, date_fin)
        if exercice is not None and len(exercice) == 4 and exercice.isdigit():
            return Period.exercice(exercice)
    except ValidationError as e:
        raise _to_http(e) from e
    raise HTTPException(status_code=422, detail="Période requise : exercice (AAAA) ou date_debut et date_fin")


async def _read_csv_upload(upload: UploadFile) -> bytes:
    """Valide un upload CSV et retourne son contenu."""
    filename = upload.filename or "unknown"
    if not filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=422,
            detail=f"Extension invalide pour '{filename}' : seuls les fichiers .csv sont acceptés.",
        )
    content = await upload.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"Fichier '{filename}' trop volumineux : {len(content)} octets (maximum {MAX_FILE_SIZE}).",
        )
    return content


# --- Écritures ---


@router.post("/api/ecritures", status_code=201)
async def create_entry(
    request: Request,
    body: EntryCreate,
    idempotency_key: str | None = Header(None),
) -> dict[str, object]:
    """Crée une écriture (en-tête + lignes, atomique)."""
    try:
        entry, lines = request.app.state.journal.create_entry(
            journal_code=body.journal_code or determine_journal(body.type_operation),
            date_piece=body.date_piece,
            libelle=body.libelle,
            lines=[li.to_draft() for li in body.lignes],
            tiers_code=body.tiers_code,
            status=body.statut,
            idempotency_key=idempotency_key,
        )
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_entry(entry, lines)


@router.get("/api/ecritures")
async def list_entries(
    request: Request,
    journal: str | None = None,
    statut: str | None = None,
    exercice: str | None = None,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
) -> list[dict[str, object]]:
    period = _period(exercice, date_debut, date_fin) if exercice or (date_debut and date_fin) else None
    try:
        entries = request.app.state.journal.list_entries(journal_code=journal, period=period, status=statut)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_entry(e) for e in entries]


@router.get("/api/ecritures/{entry_id}")
async def get_entry(request: Request, entry_id: int) -> dict[str, object]:
    try:
        entry, lines = request.app.state.journal.get_entry(entry_id)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_entry(entry, lines)


@router.post("/api/ecritures/{entry_id}/valider")
async def validate_entry(request: Request, entry_id: int) -> dict[str, object]:
    try:
        entry = request.app.state.journal.validate_entry(entry_id)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_entry(entry)


@router.post("/api/ecritures/{entry_id}/cloturer")
async def close_entry(request: Request, entry_id: int) -> dict[str, object]:
    try:
        entry = request.app.state.journal.close_entry(entry_id)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_entry(entry)


@router.post("/api/ecritures/{entry_id}/contre-passer", status_code=201)
async def reverse_entry(request: Request, entry_id: int, body: ReverseRequest | None = None) -> dict[str, object]:
    body = body or ReverseRequest()
    try:
        entry, lines = request.app.state.journal.reverse_entry(entry_id, body.date_piece, body.libelle)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_entry(entry, lines)


@router.delete("/api/ecritures/{entry_id}", status_code=204)
async def delete_entry(request: Request, entry_id: int) -> None:
    try:
        request.app.state.journal.delete_entry(entry_id)
    except LedgerError as e:
        raise _to_http(e) from e


# --- Plan comptable ---


@router.put("/api/comptes/{numero}")
async def upsert_account(request: Request, numero: str, body: AccountUpsert) -> dict[str, object]:
    """Référence un compte ; un compte non utilisable est refusé en saisie."""
    try:
        account = request.app.state.journal.upsert_account(numero, body.libelle, body.usable)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_account(account)


@router.get("/api/comptes/{numero}")
async def get_account(request: Request, numero: str) -> dict[str, object]:
    try:
        account = request.app.state.journal.get_account(numero)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_account(account)


# --- Numérotation ---


@router.post("/api/journaux/{journal_code}/numero")
async def next_piece_number(
    request: Request,
    journal_code: str,
    date: datetime.date | None = None,
) -> dict[str, object]:
    """Réserve le prochain numéro de pièce (dégradé si le stockage est indisponible)."""
    try:
        piece = request.app.state.sequence.next(journal_code, date or datetime.date.today())
    except LedgerError as e:
        raise _to_http(e) from e
    return {"numero_piece": piece.value, "sequentiel": piece.sequential}


@router.get("/api/journaux/sequences")
async def sequences(request: Request) -> list[dict[str, object]]:
    try:
        return request.app.state.sequence.sequences()
    except LedgerError as e:
        raise _to_http(e) from e


# --- Soldes et grand livre ---


@router.get("/api/soldes")
async def balances(
    request: Request,
    prefixes: list[str] = Query(default=[]),
    exercice: str | None = None,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
) -> list[dict[str, object]]:
    """Soldes par compte ; ``prefixes`` restreint les comptes (tous si vide)."""
    period = _period(exercice, date_debut, date_fin)
    try:
        result = request.app.state.aggregator.aggregate(period, prefixes or None)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_balance(b) for b in result]


@router.get("/api/balance")
async def balance_generale(request: Request, exercice: str) -> object:
    try:
        return serialize_statement(request.app.state.aggregator.balance_generale(_period(exercice)))
    except LedgerError as e:
        raise _to_http(e) from e


@router.get("/api/grand-livre/{compte}")
async def grand_livre(request: Request, compte: str, exercice: str) -> dict[str, object]:
    try:
        livre = request.app.state.aggregator.grand_livre(compte, _period(exercice))
    except LedgerError as e:
        raise _to_http(e) from e
    return {
        "compte": livre.account,
        "libelle": livre.libelle,
        "mouvements": [
            {**serialize_line(m.line), "solde_cumule": m.solde_cumule} for m in livre.mouvements
        ],
        "total_debit": livre.total_debit,
        "total_credit": livre.total_credit,
        "solde": livre.solde,
    }


# --- États financiers ---


@router.get("/api/etats/{exercice}/bilan")
async def bilan(request: Request, exercice: str) -> object:
    try:
        result = request.app.state.statements.bilan(_period(exercice))
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_statement(result)


@router.get("/api/etats/{exercice}/compte-resultat")
async def compte_resultat(request: Request, exercice: str) -> object:
    try:
        result = request.app.state.statements.compte_resultat(_period(exercice))
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_statement(result)


@router.get("/api/etats/{exercice}/indicateurs")
async def indicateurs(request: Request, exercice: str) -> object:
    try:
        result = request.app.state.statements.indicateurs(_period(exercice))
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_statement(result)


@router.get("/api/etats/{exercice}/excel")
async def download_statements(request: Request, exercice: str) -> StreamingResponse:
    """Balance, bilan, compte de résultat et indicateurs en .xlsx."""
    period = _period(exercice)
    state = request.app.state
    try:
        buffer = export_to_bytes(
            state.aggregator.balance_generale(period),
            state.statements.bilan(period),
            state.statements.compte_resultat(period),
            state.statements.indicateurs(period),
            [],
        )
    except LedgerError as e:
        raise _to_http(e) from e
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="etats-{period.label}.xlsx"'},
    )


# --- Lettrage ---


@router.get("/api/lettrage/lignes")
async def lettrage_lines(
    request: Request,
    compte: str | None = None,
    tiers_code: str | None = None,
    statut: str | None = None,
) -> list[dict[str, object]]:
    try:
        lines = request.app.state.lettrage.lignes(compte=compte, tiers_code=tiers_code, statut=statut)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_line(li) for li in lines]


@router.get("/api/lettrage/propositions")
async def lettrage_proposals(
    request: Request, compte: str, tiers_code: str | None = None
) -> list[dict[str, object]]:
    try:
        proposals = request.app.state.lettrage.proposer(compte, tiers_code)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_proposal(p) for p in proposals]


@router.post("/api/lettrage", status_code=201)
async def lettrer(request: Request, body: LettrageRequest) -> dict[str, object]:
    try:
        lettre = request.app.state.lettrage.lettrer(body.line_ids, body.compte, body.tiers_code)
    except LedgerError as e:
        raise _to_http(e) from e
    return {"lettre": lettre, "compte": body.compte, "line_ids": sorted(set(body.line_ids))}


@router.post("/api/lettrage/automatique")
async def lettrage_automatique(request: Request, body: LettrageAutoRequest) -> dict[str, object]:
    try:
        lettres = request.app.state.lettrage.appliquer_automatique(body.compte, body.tiers_code)
    except LedgerError as e:
        raise _to_http(e) from e
    return {"compte": body.compte, "lettres": lettres}


@router.delete("/api/lettrage/{compte}/{lettre}")
async def delettrer(request: Request, compte: str, lettre: str) -> dict[str, object]:
    try:
        ids = request.app.state.lettrage.delettrer(lettre, compte)
    except LedgerError as e:
        raise _to_http(e) from e
    return {"lettre": lettre, "compte": compte, "line_ids": ids}


@router.get("/api/lettrage/groupes")
async def lettrage_groups(request: Request, compte: str | None = None) -> list[dict[str, object]]:
    try:
        groups = request.app.state.lettrage.groupes(compte)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_group(g) for g in groups]


@router.get("/api/lettrage/historique")
async def lettrage_history(request: Request, compte: str | None = None, limit: int = 50) -> list[dict[str, object]]:
    try:
        records = request.app.state.lettrage.historique(compte, limit)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_statement(h) for h in records]


@router.get("/api/lettrage/statistiques")
async def lettrage_stats(request: Request, compte: str) -> dict[str, object]:
    try:
        return request.app.state.lettrage.statistiques(compte)
    except LedgerError as e:
        raise _to_http(e) from e


# --- Rapprochement bancaire ---


@router.post("/api/rapprochement/releves", status_code=201)
async def import_statement(request: Request, body: StatementImport) -> dict[str, object]:
    try:
        lines = request.app.state.reconciler.importer(
            [li.to_draft() for li in body.lignes], body.compte_banque, body.fichier_origine
        )
    except LedgerError as e:
        raise _to_http(e) from e
    return {"importees": len(lines), "lignes": [serialize_statement_line(li) for li in lines]}


@router.post("/api/rapprochement/releves/csv", status_code=201)
async def import_statement_csv(
    request: Request,
    file: UploadFile,
    compte_banque: str | None = Form(None),
) -> dict[str, object]:
    content = await _read_csv_upload(file)
    try:
        result = BankStatementParser().parse(BytesIO(content), request.app.state.config)
        lines = request.app.state.reconciler.importer(result.lines, compte_banque, file.filename)
    except LedgerError as e:
        raise _to_http(e) from e
    return {
        "importees": len(lines),
        "lignes": [serialize_statement_line(li) for li in lines],
        "anomalies": [serialize_anomaly(a) for a in result.anomalies],
    }


@router.get("/api/rapprochement/releves")
async def statement_lines(request: Request, non_rapproches: bool = True) -> list[dict[str, object]]:
    try:
        lines = request.app.state.reconciler.releves(non_rapproches=non_rapproches)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_statement_line(li) for li in lines]


@router.get("/api/rapprochement/ecritures")
async def bank_ledger_lines(request: Request, non_rapprochees: bool = True) -> list[dict[str, object]]:
    try:
        lines = request.app.state.reconciler.ecritures_banque(non_rapprochees=non_rapprochees)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_line(li) for li in lines]


@router.post("/api/rapprochement/auto")
async def auto_match(request: Request, body: AutoMatchRequest | None = None) -> dict[str, object]:
    body = body or AutoMatchRequest()
    try:
        matches = request.app.state.reconciler.auto_rapprocher(body.tolerance_jours)
    except LedgerError as e:
        raise _to_http(e) from e
    return {"rapproches": len(matches), "rapprochements": [serialize_match(m) for m in matches]}


@router.post("/api/rapprochement", status_code=201)
async def manual_match(request: Request, body: ManualMatchRequest) -> dict[str, object]:
    try:
        match = request.app.state.reconciler.rapprocher(body.statement_line_id, body.journal_line_id, body.montant)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_match(match)


@router.delete("/api/rapprochement/{match_id}")
async def undo_match(request: Request, match_id: int) -> dict[str, object]:
    try:
        match = request.app.state.reconciler.annuler(match_id)
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_match(match)


@router.get("/api/rapprochement/statistiques")
async def reconciliation_stats(request: Request) -> dict[str, object]:
    try:
        stats = request.app.state.reconciler.statistiques()
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_reconciliation_stats(stats)


@router.post("/api/rapprochement/sessions", status_code=201)
async def open_session(request: Request, body: SessionCreate) -> dict[str, object]:
    period = _period(None, body.date_debut, body.date_fin)
    try:
        session = request.app.state.reconciler.ouvrir_session(
            period, body.compte_banque, body.solde_releve_debut, body.solde_releve_fin
        )
    except LedgerError as e:
        raise _to_http(e) from e
    return serialize_session(session)


@router.get("/api/rapprochement/sessions")
async def list_sessions(request: Request, compte_banque: str | None = None) -> list[dict[str, object]]:
    try:
        sessions = request.app.state.reconciler.sessions(compte_banque)
    except LedgerError as e:
        raise _to_http(e) from e
    return [serialize_session(s) for s in sessions]


# --- Traitement d'un fichier complet ---


@router.post("/api/process")
async def process(
    request: Request,
    journal: UploadFile,
    exercice: str = Form(...),
    releve: UploadFile | None = None,
) -> JSONResponse:
    """Upload CSV → états financiers JSON, sur un stockage éphémère."""
    journal_bytes = await _read_csv_upload(journal)
    releve_bytes = await _read_csv_upload(releve) if releve is not None else None
    period = _period(exercice)

    try:
        report = PipelineOrchestrator().run_from_buffers(
            journal_bytes, request.app.state.config, period, releve_bytes
        )
    except LedgerError as e:
        raise _to_http(e) from e

    return JSONResponse(content={
        "exercice": period.label,
        "nb_ecritures": report.nb_entries,
        "bilan": serialize_statement(report.bilan),
        "compte_resultat": serialize_statement(report.compte_resultat),
        "indicateurs": serialize_statement(report.indicateurs),
        "anomalies": [serialize_anomaly(a) for a in report.anomalies],
        "rapprochement": (
            serialize_reconciliation_stats(report.reconciliation) if report.reconciliation is not None else None
        ),
    })


@router.get("/api/health")
async def health(request: Request) -> dict[str, str]:
    """Health check ; signale un stockage injoignable."""
    store = request.app.state.store
    return {"status": "ok", "stockage": "ok" if store.available else "indisponible"}
