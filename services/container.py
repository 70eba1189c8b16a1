from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Optional

from repository.activity_readers import EventLogReader, InteractionReader
from repository.base_reader import ReadCache
from repository.company_reader import CompanyReader
from repository.company_writer import CompanyWriter
from repository.contact_reader import ContactReader
from repository.contact_writer import ContactWriter
from repository.interaction_writer import InteractionWriter
from repository.opportunity_reader import OpportunityReader
from repository.opportunity_writer import OpportunityWriter
from repository.system_reader import SystemReader
from services.company_service import CompanyService
from services.opportunity_service import OpportunityService
from services.profile_client import CompanyProfileClient
from services.sales_analysis_service import SalesAnalysisService
from services.sheet_store import SheetStore, get_sheet_store
from services.workflow_service import WorkflowService
from shared.config import CrmConfig, load_crm_config


@dataclass
class CrmServices:
    config: CrmConfig
    store: SheetStore
    cache: ReadCache
    company_reader: CompanyReader
    contact_reader: ContactReader
    opportunity_reader: OpportunityReader
    interaction_reader: InteractionReader
    event_log_reader: EventLogReader
    system_reader: SystemReader
    company_writer: CompanyWriter
    contact_writer: ContactWriter
    opportunity_writer: OpportunityWriter
    interaction_writer: InteractionWriter
    company_service: CompanyService
    opportunity_service: OpportunityService
    sales_analysis_service: SalesAnalysisService
    workflow_service: WorkflowService
    profile_client: CompanyProfileClient


def build_services(
    store: SheetStore,
    config: Optional[CrmConfig] = None,
    profile_client: Optional[CompanyProfileClient] = None,
) -> CrmServices:
    """Wire every reader, writer and service around one store and one shared read cache."""
    config = config or load_crm_config()
    cache = ReadCache()

    company_reader = CompanyReader(store, config, cache)
    contact_reader = ContactReader(store, config, cache)
    system_reader = SystemReader(store, config, cache)
    opportunity_reader = OpportunityReader(store, config, cache, company_reader, system_reader)
    interaction_reader = InteractionReader(store, config, cache)
    event_log_reader = EventLogReader(store, config, cache)

    company_writer = CompanyWriter(store, config, company_reader)
    contact_writer = ContactWriter(store, config, contact_reader)
    opportunity_writer = OpportunityWriter(store, config, opportunity_reader, contact_reader, system_reader)
    interaction_writer = InteractionWriter(store, config, interaction_reader)

    return CrmServices(
        config=config,
        store=store,
        cache=cache,
        company_reader=company_reader,
        contact_reader=contact_reader,
        opportunity_reader=opportunity_reader,
        interaction_reader=interaction_reader,
        event_log_reader=event_log_reader,
        system_reader=system_reader,
        company_writer=company_writer,
        contact_writer=contact_writer,
        opportunity_writer=opportunity_writer,
        interaction_writer=interaction_writer,
        company_service=CompanyService(
            config,
            company_reader=company_reader,
            contact_reader=contact_reader,
            opportunity_reader=opportunity_reader,
            interaction_reader=interaction_reader,
            event_log_reader=event_log_reader,
            system_reader=system_reader,
            company_writer=company_writer,
            interaction_writer=interaction_writer,
        ),
        opportunity_service=OpportunityService(
            config,
            opportunity_reader=opportunity_reader,
            company_reader=company_reader,
            contact_reader=contact_reader,
            interaction_reader=interaction_reader,
            event_log_reader=event_log_reader,
        ),
        sales_analysis_service=SalesAnalysisService(config, opportunity_reader, system_reader),
        workflow_service=WorkflowService(
            config,
            company_writer=company_writer,
            contact_writer=contact_writer,
            opportunity_writer=opportunity_writer,
            interaction_writer=interaction_writer,
            contact_reader=contact_reader,
            system_reader=system_reader,
        ),
        profile_client=profile_client or CompanyProfileClient(),
    )


_services: Optional[CrmServices] = None
_services_lock = Lock()


def get_services() -> CrmServices:
    global _services
    if _services is not None:
        return _services
    with _services_lock:
        if _services is None:
            _services = build_services(get_sheet_store())
        return _services


def reset_services_for_tests(services: Optional[CrmServices] = None) -> None:
    global _services
    with _services_lock:
        _services = services
