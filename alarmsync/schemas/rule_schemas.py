import re
from datetime import timedelta
from typing import Optional, List, Dict, Any, Union, Literal, Iterator, Set, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from alarmsync.core.rule_config import RuleDefaults

Condition = Literal["gt", "lt", "gte", "lte", "equals", "neq"]
Threshold = Union[int, float, str]

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd])\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

DIGITAL_TABLE = "DIGITALDATA"


class Duration(BaseModel):
    amount: float
    unit: Literal["s", "m", "h", "d"] = "m"
    mode: Literal["instant", "continuous"] = "continuous"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode='before')
    @classmethod
    def parse_shorthand(cls, v):
        # "30m" or {"value": "5m", "mode": "continuous"}
        if isinstance(v, str):
            v = {"value": v}
        if isinstance(v, dict) and "value" in v and "amount" not in v:
            match = _DURATION_RE.match(str(v["value"]))
            if not match:
                raise ValueError(f"Invalid duration format: {v['value']!r} (expected e.g. 5m, 24h, 2d)")
            parsed = {k: val for k, val in v.items() if k != "value"}
            parsed["amount"] = float(match.group(1))
            parsed["unit"] = match.group(2).lower()
            return parsed
        return v

    @field_validator('amount')
    @classmethod
    def non_negative(cls, v):
        if v < 0:
            raise ValueError("duration amount must not be negative")
        return v

    @property
    def is_instant(self) -> bool:
        return self.mode == "instant" or self.amount == 0

    def to_timedelta(self) -> timedelta:
        return timedelta(seconds=self.amount * _UNIT_SECONDS[self.unit])

    def __str__(self):
        amount = int(self.amount) if float(self.amount).is_integer() else self.amount
        return f"{amount}{self.unit}"


class Prerequisite(BaseModel):
    tag: str
    value: Threshold
    condition: Condition = "equals"
    table: Optional[str] = None

    @field_validator('tag', mode='before')
    @classmethod
    def tag_as_string(cls, v):
        return str(v)


class RuleBase(BaseModel):
    """Fields shared by every rule variant. Camel-case keys of the legacy JSON are accepted."""
    tag: str
    condition: Condition
    threshold: Threshold = Field(alias="value")
    description: str = ""
    alarm_kind: str = Field(default="GENERAL", alias="alarmType")
    enabled: bool = True
    table: Optional[str] = None
    prerequisite: Optional[Prerequisite] = None
    duration: Optional[Duration] = None
    complaint_type: Optional[str] = Field(default=None, alias="complaintType")
    fault_type: Optional[str] = Field(default=None, alias="faultType")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator('tag', mode='before')
    @classmethod
    def tag_as_string(cls, v):
        return str(v)


class SimpleRule(RuleBase):
    kind: Literal["simple"] = "simple"


class RateRule(RuleBase):
    kind: Literal["rate"] = "rate"
    threshold_percent: float = Field(default=RuleDefaults.DEFAULT_THRESHOLD_PERCENT, alias="thresholdPercent", ge=0, le=100)
    window_hours: float = Field(default=RuleDefaults.DEFAULT_WINDOW_HOURS, alias="windowHours", gt=0)


class MasterRule(RuleBase):
    kind: Literal["master"] = "master"
    condition: Condition = "equals"
    alarm_kind: str = Field(default="CRITICAL", alias="alarmType")
    priority: int = RuleDefaults.DEFAULT_MASTER_PRIORITY

    @property
    def is_blocking(self) -> bool:
        return self.priority == RuleDefaults.BLOCKING_PRIORITY


Rule = Union[SimpleRule, RateRule, MasterRule]
OrdinaryRule = Annotated[Union[SimpleRule, RateRule], Field(discriminator="kind")]

_RATE_KEYS = ("thresholdPercent", "threshold_percent", "windowHours", "window_hours")


class RuleGroup(BaseModel):
    enabled: bool = True
    description: Optional[str] = None
    rules: List[OrdinaryRule] = []

    @field_validator('rules', mode='before')
    @classmethod
    def tag_rule_kinds(cls, v):
        if not isinstance(v, list):
            return v
        tagged = []
        for item in v:
            if isinstance(item, dict) and "kind" not in item:
                item = {**item, "kind": "rate" if any(k in item for k in _RATE_KEYS) else "simple"}
            tagged.append(item)
        return tagged


class RuleSets(BaseModel):
    di_rules: RuleGroup = Field(default_factory=RuleGroup, alias="diRules")
    ai_rules: RuleGroup = Field(default_factory=RuleGroup, alias="aiRules")

    model_config = ConfigDict(populate_by_name=True)

    def active_rules(self) -> Iterator[Union[SimpleRule, RateRule]]:
        """Enabled rules of enabled groups, digital group first, in declaration order."""
        for group in (self.di_rules, self.ai_rules):
            if not group.enabled:
                continue
            for rule in group.rules:
                if rule.enabled:
                    yield rule

    def simple_rules(self) -> List[SimpleRule]:
        return [r for r in self.active_rules() if isinstance(r, SimpleRule)]

    def rate_rules(self) -> List[RateRule]:
        return [r for r in self.active_rules() if isinstance(r, RateRule)]


class CommunicationFaultConfig(BaseModel):
    enabled: bool = True
    tag: str = RuleDefaults.COMM_TAG
    stale_hours: float = Field(default=RuleDefaults.COMM_STALE_HOURS, alias="staleHours")
    analog_silence_hours: float = Field(default=RuleDefaults.COMM_ANALOG_SILENCE_HOURS, alias="analogSilenceHours")
    decommission_hours: float = Field(default=RuleDefaults.COMM_DECOMMISSION_HOURS, alias="decommissionHours")

    model_config = ConfigDict(populate_by_name=True)


class PowerFaultConfig(BaseModel):
    enabled: bool = True
    tag: str = RuleDefaults.POWER_TAG
    lookback_minutes: float = Field(default=RuleDefaults.POWER_LOOKBACK_MINUTES, alias="lookbackMinutes")

    model_config = ConfigDict(populate_by_name=True)


class ComputedFaults(BaseModel):
    communication: CommunicationFaultConfig = Field(default_factory=CommunicationFaultConfig)
    power: PowerFaultConfig = Field(default_factory=PowerFaultConfig)


class CmsMapping(BaseModel):
    title_template: str = Field(default="{{Description}} - RTU {{RtuId}}", alias="titleTemplate")
    description_template: str = Field(
        default="{{Description}} detected on RTU {{RtuId}} (tag {{TagNumber}}, value {{Value}})",
        alias="descriptionTemplate",
    )
    default_priority: str = Field(default="MEDIUM", alias="defaultPriority")
    default_status: str = Field(default="REGISTERED", alias="defaultStatus")
    default_complaint_type: str = Field(default="Street Lighting", alias="defaultComplaintType")
    defaults: Dict[str, Any] = {}

    model_config = ConfigDict(populate_by_name=True)


class SyncRulesConfig(BaseModel):
    rule_sets: RuleSets = Field(default_factory=RuleSets, alias="ruleSets")
    master_rules: List[MasterRule] = Field(default=[], alias="masterRules")
    winner_policy: Literal["single", "per_tag"] = Field(default="single", alias="winnerPolicy")
    closed_statuses: List[str] = Field(default=list(RuleDefaults.CLOSED_STATUSES), alias="closedStatuses")
    computed_faults: ComputedFaults = Field(default_factory=ComputedFaults, alias="computedFaults")
    cms_mapping: CmsMapping = Field(default_factory=CmsMapping, alias="cmsMapping")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('master_rules', mode='before')
    @classmethod
    def tag_master_kind(cls, v):
        if isinstance(v, list):
            return [{**item, "kind": "master"} if isinstance(item, dict) else item for item in v]
        return v

    @field_validator('closed_statuses')
    @classmethod
    def upper_statuses(cls, v):
        return [s.upper() for s in v]

    def active_master_rules(self) -> List[MasterRule]:
        return [r for r in self.master_rules if r.enabled]

    def tags_of_interest(self) -> Set[str]:
        """Every tag a rule, prerequisite or master rule can look at."""
        tags = set()
        for rule in list(self.rule_sets.active_rules()) + self.active_master_rules():
            tags.add(rule.tag)
            if rule.prerequisite:
                tags.add(rule.prerequisite.tag)
        return tags

    def analog_tags(self) -> Set[str]:
        """
        Tags read from the analog table when both tables carry them:
        analog rule tags and analog-bound prerequisites, except master rule tags.
        """
        tags = set()
        if self.rule_sets.ai_rules.enabled:
            tags.update(r.tag for r in self.rule_sets.ai_rules.rules if r.enabled)
        for rule in self.rule_sets.active_rules():
            pre = rule.prerequisite
            if pre and pre.table and pre.table.upper() != DIGITAL_TABLE:
                tags.add(pre.tag)
        return tags - {r.tag for r in self.active_master_rules()}

    def max_window_hours(self) -> float:
        rate_rules = self.rule_sets.rate_rules()
        if not rate_rules:
            return 0
        return max(r.window_hours for r in rate_rules)

    def master_rule_for_tag(self, tag: str) -> Optional[MasterRule]:
        for rule in self.active_master_rules():
            if rule.tag == str(tag):
                return rule
        return None
