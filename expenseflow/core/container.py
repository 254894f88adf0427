# --------------------------------
# DI container
# --------------------------------
import database
from config import AppConfig
from core.approvals.engine import ApprovalEngine
from core.approvals.repositories import FlowRepository, RequestRepository
from core.auth.repositories import UserRepository
from core.auth.services import UserService
from core.organization.repositories import CompanyRepository
from core.organization.services import CompanyService
from core.services.currency_service import CurrencyService
from expenses.repositories import ExpenseRepository
from expenses.services.expense_service import ExpenseService

from core.utils.api_helpers import CONTAINER_KEY


class Container:
    """Wires repositories, the approval engine and services together.

    Every collaborator can be replaced, which is how tests run the whole
    app against an in-memory store.
    """

    def __init__(self, config: AppConfig = None, flow_repo=None, request_repo=None,
                 expense_repo=None, user_repo=None, company_repo=None,
                 currency_service=None, transaction=None):
        self._config = config or AppConfig.from_env()
        self._user_repo = user_repo or UserRepository()
        self._company_repo = company_repo or CompanyRepository()
        expense_repo = expense_repo or ExpenseRepository()
        transaction = transaction or database.transaction

        self._currency_service = currency_service or CurrencyService(
            api_url=self._config.EXCHANGE_RATE_API_URL,
            cache_seconds=self._config.EXCHANGE_RATE_CACHE_SECONDS,
            countries_api_url=self._config.COUNTRIES_API_URL,
        )
        self._approval_engine = ApprovalEngine(
            flow_repo=flow_repo or FlowRepository(),
            request_repo=request_repo or RequestRepository(),
            expense_repo=expense_repo,
            user_repo=self._user_repo,
            transaction=transaction,
        )
        self._expense_service = ExpenseService(
            engine=self._approval_engine,
            expense_repo=expense_repo,
            company_repo=self._company_repo,
            currency_service=self._currency_service,
            transaction=transaction,
        )
        self._user_service = UserService(user_repo=self._user_repo)
        self._company_service = CompanyService(
            company_repo=self._company_repo,
            user_repo=self._user_repo,
            currency_service=self._currency_service,
            transaction=transaction,
        )

    @property
    def config(self):
        return self._config

    @property
    def user_repo(self):
        return self._user_repo

    @property
    def approval_engine(self):
        return self._approval_engine

    @property
    def expense_service(self):
        return self._expense_service

    @property
    def user_service(self):
        return self._user_service

    @property
    def company_service(self):
        return self._company_service

