"""Push audience definitions from the Audiences sheet to CM360.

Each row of the Audiences sheet is compared with the checksums stored the
last time it was loaded or processed. Rows without a checksum are created as
new remarketing lists, rows whose definition changed are updated, and rows
whose advertiser shares changed get their shares rewritten. The outcome of
every row is written to its status cell.
"""

import logging
import re
from typing import Any

from audience_manager_mcp.clients.cm360.facade import CampaignManagerFacade
from audience_manager_mcp.core.config import Settings, get_settings
from audience_manager_mcp.core.exceptions import (
    AudienceManagerError,
    AudienceProcessingError,
)
from audience_manager_mcp.data_providers.audience_sheet import AudienceSheet
from audience_manager_mcp.models.audience import (
    Audience,
    AudienceAction,
    AudiencePlan,
    AudienceProcessResult,
    AudienceRule,
)
from audience_manager_mcp.models.base import current_date_string

logger = logging.getLogger(__name__)


class AudienceProcessor:
    """Creates, updates and shares remarketing lists defined in the sheets."""

    def __init__(
        self,
        facade: CampaignManagerFacade,
        sheet: AudienceSheet,
        settings: Settings | None = None,
    ):
        """Initialize the processor.

        Args:
            facade: CM360 facade for the configured advertiser
            sheet: The Audiences and Rules sheets
            settings: Application settings (defaults to the global settings)
        """
        self.facade = facade
        self.sheet = sheet
        self.settings = settings or get_settings()
        self._rule_rows: list[dict[str, str]] | None = None

    def process_audiences(self) -> list[AudienceProcessResult]:
        """Process every audience row that has pending changes.

        The sheets are saved once all rows were processed, including when a
        row fails with an unexpected error.

        Returns:
            One result per processed audience, in sheet order
        """
        self._rule_rows = None
        rows = self.sheet.read_audience_rows()
        logger.info(f"Processing {len(rows)} audience row(s)")

        results: list[AudienceProcessResult] = []
        try:
            for index, row in enumerate(rows):
                plan = self.plan_audience(row, index)
                if plan is None:
                    continue
                results.append(self.process_audience(plan))
        finally:
            self.sheet.save()

        failed = sum(1 for result in results if not result.success)
        logger.info(
            f"Processed {len(results)} audience(s), {failed} failed, "
            f"{len(rows) - len(results)} unchanged or skipped"
        )
        return results

    def plan_audience(self, row: dict[str, str], index: int) -> AudiencePlan | None:
        """Build the audience of a sheet row and decide what to push.

        Args:
            row: The audience row
            index: Position of the row in the Audiences sheet

        Returns:
            The plan, or None for rows without a name or without changes
        """
        name = str(row.get("name", "")).strip()
        if not name:
            return None

        audience_id = str(row.get("id", "")).strip() or None
        audience = Audience(
            id=audience_id,
            name=name,
            description=str(row.get("description", "")),
            life_span=self._parse_life_span(row.get("life_span"), name),
            floodlight_id=self.extract_floodlight_id(str(row.get("floodlight", ""))),
            rules=self.get_audience_rules(audience_id) if audience_id else [],
            shares=self.extract_shared_advertiser_ids(str(row.get("shares", ""))),
        )

        actions: list[AudienceAction] = []
        checksum = str(row.get("checksum", "")).strip()
        if not checksum:
            actions.append(AudienceAction.CREATE)
        elif checksum != audience.get_checksum():
            actions.append(AudienceAction.UPDATE)

        if str(row.get("shares_checksum", "")).strip() != audience.get_shares_checksum():
            actions.append(AudienceAction.UPDATE_SHARES)

        if not actions:
            logger.debug(f"Audience '{name}' is unchanged")
            return None

        return AudiencePlan(index=index, audience=audience, actions=actions)

    def process_audience(self, plan: AudiencePlan) -> AudienceProcessResult:
        """Push a single audience to CM360 and record the outcome in the sheet.

        Failures are recorded in the status cell and the returned result
        instead of being raised, so that the remaining audiences still run.
        """
        audience = plan.audience
        logger.info(f"Processing audience '{audience.name}' ({audience.id})...")

        remarketing_list: dict[str, Any] = {
            "name": audience.name,
            "description": audience.description,
            "lifeSpan": audience.life_span,
            "listPopulationRule": self.create_list_population_rule(
                audience.floodlight_id, audience.rules
            ),
            "active": self.settings.sheets.default_state,
            "listSource": self.settings.sheets.list_source,
        }

        try:
            if plan.has_action(AudienceAction.UPDATE):
                logger.info(f"Updating '{audience.name}'...")
                remarketing_list["id"] = audience.id
                self.facade.update_remarketing_list(remarketing_list)
            elif plan.has_action(AudienceAction.CREATE):
                logger.info(f"Creating '{audience.name}'...")
                self._create(plan, remarketing_list)

            if plan.has_action(AudienceAction.UPDATE_SHARES):
                logger.info(f"Updating shares for '{audience.name}'...")
                self._update_shares(plan)

            self.sheet.update_audience_cells(plan.index, checksum=audience.get_checksum())

            status = f"Success ({current_date_string()})"
            message = f"Processed audience '{audience.name}' successfully!"
            logger.info(message)
            result = AudienceProcessResult(
                index=plan.index,
                audience_id=audience.id,
                audience_name=audience.name,
                actions=plan.actions,
                success=True,
                status=status,
                messages=[message],
            )
        except AudienceManagerError as e:
            status = f"Error! {e} ({current_date_string()})"
            message = f"Error while processing audience '{audience.name}'!"
            logger.error(f"{message} {e}")
            result = AudienceProcessResult(
                index=plan.index,
                audience_id=audience.id,
                audience_name=audience.name,
                actions=plan.actions,
                success=False,
                status=status,
                messages=[message, str(e)],
            )

        self.sheet.update_audience_cells(plan.index, status=status)
        return result

    def create_list_population_rule(
        self, floodlight_id: str | None, rules: list[AudienceRule]
    ) -> dict[str, Any]:
        """Build a CM360 list population rule from audience rules.

        Every value of a rule becomes a term of its own. Terms of rules in the
        same group form one clause; clauses are ordered by group.

        Args:
            floodlight_id: The Floodlight activity the list is built on
            rules: The audience rules

        Returns:
            The list population rule resource
        """
        rules_config = self.settings.rules
        terms_by_group: dict[int, list[dict[str, Any]]] = {}

        for rule in rules:
            terms = [
                {
                    "variableName": rule.variable_name,
                    "type": rules_config.term_type,
                    "operator": rule.operator,
                    "value": value,
                    "negation": rule.negation,
                }
                for value in rule.value.split(rules_config.separator)
            ]
            terms_by_group.setdefault(rule.group, []).extend(terms)

        list_population_rule: dict[str, Any] = {"floodlightActivityId": floodlight_id}
        clauses = [{"terms": terms_by_group[group]} for group in sorted(terms_by_group)]
        if clauses:
            list_population_rule["listPopulationClauses"] = clauses

        return list_population_rule

    def get_audience_rules(self, audience_id: str) -> list[AudienceRule]:
        """Return the rules of an audience from the Rules sheet.

        Rows missing a variable, operator or value are skipped.
        """
        separator = self.settings.rules.variable_separator
        rules: list[AudienceRule] = []

        for row in self._get_rule_rows():
            if str(row.get("audience_id", "")).strip() != audience_id:
                continue

            variable = str(row.get("variable", "")).split(separator, 1)
            variable_name = variable[0].strip()
            operator = str(row.get("operator", "")).strip()
            value = str(row.get("values", ""))

            if not (variable_name and operator and value):
                logger.warning(f"Skipping incomplete rule of audience {audience_id}: {row}")
                continue

            rules.append(
                AudienceRule(
                    group=self._parse_group(row.get("group")),
                    variable_name=variable_name,
                    variable_friendly_name=variable[1] if len(variable) > 1 else "",
                    operator=operator,
                    value=value,
                    negation=str(row.get("negation", "")).strip().lower() == "true",
                )
            )

        return rules

    def extract_floodlight_id(self, id_and_name: str) -> str | None:
        """Extract the ID from a ``"Name (id)"`` cell; the last match wins."""
        matches = re.findall(self.settings.multi_select.id_and_name_regex, id_and_name)
        return matches[-1] if matches else None

    def extract_shared_advertiser_ids(self, shares: str) -> list[str]:
        """Extract advertiser IDs from a ``"A (1)##B (2)"`` cell."""
        return re.findall(self.settings.multi_select.separator_regex, shares)

    def _create(self, plan: AudiencePlan, remarketing_list: dict[str, Any]) -> None:
        audience = plan.audience
        result = self.facade.create_remarketing_list(remarketing_list)
        new_id = str(result.get("id", "")) if result else ""
        if not new_id:
            raise AudienceProcessingError(
                audience.name, "CM360 did not return the ID of the created list"
            )

        self.sheet.update_audience_cells(plan.index, id=new_id)
        if audience.id:
            replaced = self.sheet.replace_audience_id_in_rules(audience.id, new_id)
            logger.debug(f"Pointed {replaced} rule(s) from {audience.id} to {new_id}")

        audience.id = new_id

    def _update_shares(self, plan: AudiencePlan) -> None:
        audience = plan.audience
        if not audience.id:
            raise AudienceProcessingError(
                audience.name, "cannot share a list without an ID"
            )

        shares_resource = self.facade.get_remarketing_list_shares_resource(audience.id)
        shares_resource["sharedAdvertiserIds"] = audience.shares
        self.facade.update_remarketing_list_shares(audience.id, shares_resource)

        self.sheet.update_audience_cells(
            plan.index, shares_checksum=audience.get_shares_checksum()
        )

    def _get_rule_rows(self) -> list[dict[str, str]]:
        if self._rule_rows is None:
            self._rule_rows = self.sheet.read_rule_rows()
        return self._rule_rows

    def _parse_life_span(self, value: Any, name: str) -> int:
        try:
            return int(str(value).strip())
        except ValueError:
            default = self.settings.sheets.default_life_span
            logger.warning(
                f"Invalid life span '{value}' for audience '{name}', using {default}"
            )
            return default

    @staticmethod
    def _parse_group(value: Any) -> int:
        try:
            group = int(str(value).strip())
        except ValueError:
            return 0
        return max(group, 0)
