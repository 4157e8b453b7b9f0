from pathlib import Path

from ggr_monitor.cli import main


def test_scan_reports_each_file_and_writes_issues(tmp_path: Path, capsys):
    good = tmp_path / "jan.csv"
    good.write_text("Operator,Month,Stake,Payout\nAcme,2024-01,1000,600\nAcme,2024-03,500,100\n")
    bad = tmp_path / "feb.xlsx"
    bad.write_bytes(b"not a workbook")
    issues = tmp_path / "issues.csv"

    exit_code = main(["scan", str(good), str(bad), "--approve", "--issues-csv", str(issues)])

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "jan.csv: 2 report(s)" in out
    assert "feb.xlsx: FAILED" in out
    assert "Missing months: 1" in out
    assert "1. Acme" in out
    lines = issues.read_text().splitlines()
    assert lines[0] == "issue_type,operator_id,report_id,period,message,difference"
    assert lines[1].startswith("missing_month,acme,,2024-02")


def test_scan_rejects_bad_period(tmp_path: Path):
    path = tmp_path / "jan.csv"
    path.write_text("Stake,Payout\n1,1\n")

    assert main(["scan", str(path), "--period", "January"]) == 2
