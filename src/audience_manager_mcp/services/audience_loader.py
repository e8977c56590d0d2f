"""Load the advertiser's remarketing lists from CM360 into the sheets."""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from audience_manager_mcp.clients.cm360.facade import CampaignManagerFacade
from audience_manager_mcp.core.config import Settings, get_settings
from audience_manager_mcp.core.exceptions import DataError
from audience_manager_mcp.data_providers.audience_sheet import AudienceSheet
from audience_manager_mcp.models.audience import Audience, AudienceRule
from audience_manager_mcp.models.base import current_date_string

logger = logging.getLogger(__name__)


class AudienceLoader:
    """Reads CM360 remarketing lists and their lookup data."""

    def __init__(
        self,
        facade: CampaignManagerFacade,
        sheet: AudienceSheet,
        settings: Settings | None = None,
    ):
        self.facade = facade
        self.sheet = sheet
        self.settings = settings or get_settings()
        self._advertiser_names: dict[str, str] | None = None

    def fetch_custom_variables(self) -> list[str]:
        """Return the custom Floodlight variables as ``"U1:Report name"``."""
        separator = self.settings.rules.variable_separator
        return [
            f"{variable.get('variableType', '')}{separator}{variable.get('reportName', '')}"
            for variable in self.facade.get_user_defined_variable_configurations()
        ]

    def fetch_floodlight_activities(self) -> list[tuple[str, str]]:
        """Return ``(id, "Name (id)")`` pairs of the Floodlight activities."""
        return [
            (str(activity["id"]), f"{activity.get('name', '')} ({activity['id']})")
            for activity in self.facade.get_floodlight_activities()
        ]

    def fetch_advertisers(
        self, own_advertiser_id: str | None = None
    ) -> list[tuple[str, str]]:
        """Return ``(id, "Name (id)")`` pairs of the advertisers to share with.

        Args:
            own_advertiser_id: Advertiser to leave out (defaults to the
                configured advertiser)
        """
        own_id = str(own_advertiser_id or self.facade.advertiser_id)
        advertisers: list[tuple[str, str]] = []

        def collect(page: list[dict[str, Any]]) -> None:
            for advertiser in page:
                advertiser_id = str(advertiser.get("id", ""))
                if advertiser_id and advertiser_id != own_id:
                    advertisers.append(
                        (advertiser_id, f"{advertiser.get('name', '')} ({advertiser_id})")
                    )

        self.facade.get_advertisers(self.settings.cm360.max_results_per_page, collect)
        logger.info(f"Fetched {len(advertisers)} advertiser(s)")
        return advertisers

    def parse_audience_rules(
        self,
        remarketing_list: dict[str, Any],
        custom_variables: list[dict[str, Any]],
    ) -> list[AudienceRule]:
        """Turn the list population clauses of a remarketing list into rules.

        Every term becomes a rule whose group is the index of its clause.
        Clauses without terms do not take up a group.
        """
        friendly_names = {
            str(variable.get("variableType", "")).lower(): str(
                variable.get("reportName", "")
            )
            for variable in custom_variables
        }
        clauses = (remarketing_list.get("listPopulationRule") or {}).get(
            "listPopulationClauses"
        ) or []

        rules: list[AudienceRule] = []
        group = 0
        for clause in clauses:
            terms = (clause or {}).get("terms")
            if not terms:
                continue

            for term in terms:
                variable_name = str(term.get("variableName", ""))
                rules.append(
                    AudienceRule(
                        group=group,
                        variable_name=variable_name,
                        variable_friendly_name=friendly_names.get(variable_name.lower(), ""),
                        operator=str(term.get("operator", "")),
                        value=str(term.get("value", "")),
                        negation=bool(term.get("negation", False)),
                    )
                )
            group += 1

        return rules

    def load_audiences(self) -> list[Audience]:
        """Replace the Audiences and Rules sheets with the lists in CM360.

        Returns:
            The loaded audiences
        """
        self._advertiser_names = None
        remarketing_lists = self.facade.get_remarketing_lists()
        custom_variables = self.facade.get_user_defined_variable_configurations()
        floodlight_names = {
            str(activity["id"]): str(activity.get("name", ""))
            for activity in self.facade.get_floodlight_activities()
        }
        logger.info(f"Loading {len(remarketing_lists)} remarketing list(s)")

        audiences: list[Audience] = []
        audience_rows: list[dict[str, Any]] = []
        for remarketing_list in remarketing_lists:
            audience = self._to_audience(remarketing_list, custom_variables, floodlight_names)
            shares = self.facade.get_remarketing_list_shares(str(audience.id)) or []
            audience.shares = [str(advertiser_id) for advertiser_id in shares]

            audiences.append(audience)
            audience_rows.append(self.audience_to_row(audience))

        self.sheet.write_audience_rows(audience_rows)
        self.sheet.write_rule_rows(self._rule_rows(audiences))
        self.sheet.save()

        return audiences

    def audience_to_row(self, audience: Audience) -> dict[str, Any]:
        """Render an audience as a row of the Audiences sheet.

        Shares are rendered as sorted ``"Name (id)"`` labels. The audience's
        shares are reordered to match, so that the stored shares checksum
        agrees with the IDs read back from the cell.
        """
        labeled = sorted(
            (self._advertiser_label(advertiser_id), advertiser_id)
            for advertiser_id in audience.shares
        )
        audience.shares = [advertiser_id for _, advertiser_id in labeled]

        floodlight = ""
        if audience.floodlight_id:
            floodlight = f"{audience.floodlight_name or ''} ({audience.floodlight_id})"

        return {
            "id": audience.id,
            "name": audience.name,
            "description": audience.description,
            "life_span": audience.life_span,
            "floodlight": floodlight,
            "shares": self.settings.multi_select.separator.join(
                label for label, _ in labeled
            ),
            "status": f"Fetched ({current_date_string()})",
            "checksum": audience.get_checksum(),
            "shares_checksum": audience.get_shares_checksum(),
            "json": audience.to_json(),
        }

    def extract_and_output_rules(self) -> int:
        """Rebuild the Rules sheet from the JSON column of the Audiences sheet.

        Returns:
            The number of rule rows written

        Raises:
            DataError: If a JSON cell does not hold a valid audience
        """
        audiences: list[Audience] = []
        for index, row in enumerate(self.sheet.read_audience_rows()):
            raw = str(row.get("json", "")).strip()
            if not raw:
                continue
            try:
                audiences.append(Audience.from_json(raw))
            except PydanticValidationError as e:
                raise DataError(f"Invalid audience JSON in row {index}: {e}") from e

        rule_rows = self._rule_rows(audiences)
        self.sheet.write_rule_rows(rule_rows)
        self.sheet.save()
        logger.info(f"Wrote {len(rule_rows)} rule(s) for {len(audiences)} audience(s)")
        return len(rule_rows)

    def _to_audience(
        self,
        remarketing_list: dict[str, Any],
        custom_variables: list[dict[str, Any]],
        floodlight_names: dict[str, str],
    ) -> Audience:
        population_rule = remarketing_list.get("listPopulationRule") or {}
        floodlight_id = population_rule.get("floodlightActivityId")
        floodlight_id = str(floodlight_id) if floodlight_id else None

        return Audience(
            id=str(remarketing_list.get("id", "")),
            name=str(remarketing_list.get("name", "")),
            description=remarketing_list.get("description") or "",
            life_span=self._life_span(remarketing_list.get("lifeSpan")),
            floodlight_id=floodlight_id,
            floodlight_name=floodlight_names.get(floodlight_id, "") if floodlight_id else None,
            rules=self.parse_audience_rules(remarketing_list, custom_variables),
        )

    def _life_span(self, value: Any) -> int:
        try:
            life_span = int(value)
        except (TypeError, ValueError):
            return self.settings.sheets.default_life_span
        return life_span or self.settings.sheets.default_life_span

    def _advertiser_label(self, advertiser_id: str) -> str:
        if self._advertiser_names is None:
            self._advertiser_names = dict(self.fetch_advertisers())
        return self._advertiser_names.get(
            advertiser_id,
            f"{self.settings.sheets.missing_advertiser_name} ({advertiser_id})",
        )

    def _rule_rows(self, audiences: list[Audience]) -> list[dict[str, Any]]:
        separator = self.settings.rules.variable_separator
        return [
            {
                "audience_id": audience.id,
                "group": rule.group,
                "variable": f"{rule.variable_name}{separator}{rule.variable_friendly_name}",
                "operator": rule.operator,
                "values": rule.value,
                "negation": rule.negation,
            }
            for audience in audiences
            for rule in audience.rules
        ]
