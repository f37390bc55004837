"""
Admin-only rule management.
"""

from fastapi import APIRouter, Depends

from .auth import admin_only
from .schemas import RuleRequest
from ..core.rules import add_rule, delete_rule, get_rule, list_rules, update_rule
from ..core.schema import Identity

router = APIRouter()


@router.post("/add-regex-rule", status_code=201)
def add_regex_rule(body: RuleRequest, identity: Identity = Depends(admin_only)):
    rule = add_rule(body.pattern, body.action, body.example_match)
    return {"message": "Regex rule added successfully", "rule": rule.to_dict()}


@router.get("/regex-rules")
def get_regex_rules(identity: Identity = Depends(admin_only)):
    rules = [rule.to_dict() for rule in list_rules()]
    return {"rules": rules, "count": len(rules)}


@router.get("/regex-rules/{rule_id}")
def get_regex_rule(rule_id: int, identity: Identity = Depends(admin_only)):
    return {"rule": get_rule(rule_id).to_dict()}


@router.put("/regex-rules/{rule_id}")
def put_regex_rule(rule_id: int, body: RuleRequest, identity: Identity = Depends(admin_only)):
    rule = update_rule(rule_id, body.pattern, body.action, body.example_match)
    return {"message": "Regex rule updated successfully", "rule": rule.to_dict()}


@router.delete("/regex-rules/{rule_id}")
def delete_regex_rule(rule_id: int, identity: Identity = Depends(admin_only)):
    delete_rule(rule_id)
    return {"message": "Regex rule deleted successfully"}
