import argparse
import getpass
import sys
from pathlib import Path

from revente.core.context import build_context
from revente.core.services import dashboard, settings as prefs_service
from revente.core.services.inventory import query_products
from revente.core.services.profit import calculate
from revente.export import transfer
from revente.utils.config import load_config
from revente.utils.exceptions import DataImportError, ReventeError, ValidationError
from revente.utils.money import format_money, format_percent

PRODUCT_FIELDS = [
    ("nom", "--nom"), ("sku", "--sku"), ("categorie", "--categorie"), ("fournisseur", "--fournisseur"),
    ("etat", "--etat"), ("emplacement", "--emplacement"), ("tags", "--tags"), ("notes", "--notes"),
    ("description", "--description"), ("quantite", "--quantite"), ("prixAchat", "--achat"),
    ("prixVente", "--vente"), ("fraisPort", "--port"), ("commissionPlateforme", "--commission"),
    ("fraisEmballage", "--emballage"), ("fraisAnnexes", "--annexes"), ("statut", "--statut"),
    ("dateAchat", "--date-achat"), ("dateVente", "--date-vente"), ("imageUrl", "--image"),
]

def get_context(config_path=None):
    return build_context(load_config(config_path))

def _owner(ctx):
    s = ctx.auth.current_session
    if s is None:
        raise ReventeError("Non connecté : utilisez `login` ou `login --anonymous`")
    return s.user_id

def _out_path(ctx, out, default_name) -> Path:
    if out:
        return Path(out)
    return Path(ctx.cfg.paths["exports_dir"]) / default_name

def _add_product_args(p, required=False):
    for key, flag in PRODUCT_FIELDS:
        p.add_argument(flag, dest=key, required=required and key in ("nom", "prixAchat", "prixVente"))

def _fields(args) -> dict:
    return {k: getattr(args, k) for k, _ in PRODUCT_FIELDS if getattr(args, k, None) is not None}

def _line(r) -> str:
    prof = calculate(r)
    return (f"[{r.id}] {r.nom} {('· ' + r.sku) if r.sku else ''} | {r.statut} | qty={r.quantite} "
            f"achat={r.prix_achat} vente={r.prix_vente} | profit €{format_money(prof.net_profit)} "
            f"({format_percent(prof.roi_percentage)}% ROI)")

def main(argv=None):
    parser = argparse.ArgumentParser(prog="revente", description="Suivi achat / revente")
    parser.add_argument("--config", help="chemin du config.yaml")
    sub = parser.add_subparsers(dest="cmd")

    su = sub.add_parser("signup", help="créer un compte")
    su.add_argument("--email", required=True)
    li = sub.add_parser("login", help="se connecter")
    li.add_argument("--email")
    li.add_argument("--anonymous", action="store_true", help="continuer sans compte")
    sub.add_parser("logout", help="se déconnecter")
    sub.add_parser("whoami", help="session courante")

    pa = sub.add_parser("product-add", help="nouveau produit")
    _add_product_args(pa, required=True)
    pa.add_argument("--auto-sku", action="store_true")

    pl = sub.add_parser("product-list", help="liste des produits")
    pl.add_argument("--search", default="")
    pl.add_argument("--status", default="")
    pl.add_argument("--category", default="")
    pl.add_argument("--supplier", default="")
    pl.add_argument("--sort")
    pl.add_argument("--order", choices=["asc", "desc"], default="asc")

    pu = sub.add_parser("product-update", help="modifier un produit")
    pu.add_argument("id")
    _add_product_args(pu)

    pd = sub.add_parser("product-delete", help="supprimer un ou plusieurs produits")
    pd.add_argument("ids", nargs="+")

    sk = sub.add_parser("sku", help="générer une référence / régler le préfixe")
    sk.add_argument("--prefix")
    sk.add_argument("--reset", type=int)

    pr = sub.add_parser("profit", help="rentabilité d'un produit")
    pr.add_argument("id")

    sub.add_parser("stats", help="tableau de bord")

    ec = sub.add_parser("export-csv", help="exporter en CSV")
    ec.add_argument("--out", help="fichier de sortie (défaut : dossier des exports)")
    ec.add_argument("--ids", nargs="*")
    ej = sub.add_parser("export-json", help="sauvegarde JSON")
    ej.add_argument("--out", help="fichier de sortie (défaut : dossier des exports)")
    im = sub.add_parser("import", help="importer un fichier CSV ou JSON")
    im.add_argument("path")

    sub.add_parser("prefs", help="afficher les préférences")
    go = sub.add_parser("goal", help="objectif mensuel")
    go.add_argument("amount")
    ea = sub.add_parser("expense-add", help="ajouter une dépense")
    ea.add_argument("--desc", required=True)
    ea.add_argument("--amount", required=True)
    ea.add_argument("--date")
    sa = sub.add_parser("supplier-add", help="ajouter un fournisseur")
    sa.add_argument("name")
    sub.add_parser("clear-local", help="vider les données locales")

    sv = sub.add_parser("serve", help="lancer l'API HTTP")
    sv.add_argument("--host", default="127.0.0.1")
    sv.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    if args.cmd is None:
        parser.print_help()
        return 0
    ctx = get_context(args.config)
    try:
        return _run(ctx, args)
    except ValidationError as e:
        for field, msg in e.errors.items():
            print(f"❌ {field}: {msg}", file=sys.stderr)
        return 2
    except ReventeError as e:
        print(f"❌ {e.user_message}", file=sys.stderr)
        return 1

def _run(ctx, args):
    cmd = args.cmd
    if cmd == "signup":
        s = ctx.auth.sign_up(args.email, getpass.getpass("Mot de passe: "))
        print(f"✅ Compte créé : {s.email}")
    elif cmd == "login":
        if args.anonymous:
            s = ctx.auth.sign_in_anonymously()
        else:
            if not args.email:
                raise ValidationError({"email": "E-mail requis"})
            s = ctx.auth.sign_in(args.email, getpass.getpass("Mot de passe: "))
        print(f"✅ Connecté : {s.display_name}")
    elif cmd == "logout":
        ctx.auth.sign_out()
        print("✅ Déconnecté")
    elif cmd == "whoami":
        s = ctx.auth.current_session
        print(f"{s.display_name} <{s.email}> ({ctx.mode})" if s else "(non connecté)")
    elif cmd == "product-add":
        owner = _owner(ctx)
        fields = _fields(args)
        if args.auto_sku and not fields.get("sku"):
            fields["sku"] = ctx.sku.next_sku(ctx.products.skus(owner))
        rec = ctx.products.create(owner, fields)
        ctx.journal({"type": "product_add", "owner": owner, "id": rec.id, "sku": rec.sku,
                     "nom": rec.nom, "statut": rec.statut})
        print(f"✅ Produit ajouté ID={rec.id}")
    elif cmd == "product-list":
        rows = query_products(ctx.products.list(_owner(ctx)), args.search, args.category,
                              args.status, args.supplier, args.sort, args.order)
        if not rows:
            print("(vide)")
        for r in rows:
            print(_line(r))
    elif cmd == "product-update":
        owner = _owner(ctx)
        current = ctx.products.get(owner, args.id).to_public()
        current.update(_fields(args))
        ctx.products.update(owner, args.id, current)
        ctx.journal({"type": "product_update", "owner": owner, "id": args.id})
        print("✅ Produit modifié")
    elif cmd == "product-delete":
        owner = _owner(ctx)
        failed = ctx.products.bulk_delete(owner, args.ids)
        ctx.journal({"type": "product_bulk_delete", "owner": owner,
                     "count": len(args.ids) - len(failed), "detail": ",".join(failed)})
        if failed:
            print(f"⚠️ Non supprimés : {', '.join(failed)}")
        else:
            print(f"✅ {len(args.ids)} produit(s) supprimé(s)")
    elif cmd == "sku":
        if args.prefix is not None:
            ctx.sku.set_prefix(args.prefix)
        if args.reset is not None:
            ctx.sku.reset(args.reset)
            print(f"✅ Compteur remis à {ctx.sku.counter}")
        else:
            print(ctx.sku.next_sku(ctx.products.skus(_owner(ctx))))
    elif cmd == "profit":
        prof = calculate(ctx.products.get(_owner(ctx), args.id))
        print(f"Coût total      : €{format_money(prof.total_cost)}")
        print(f"Revenu total    : €{format_money(prof.total_revenue)}")
        print(f"Profit net      : €{format_money(prof.net_profit)}")
        print(f"Profit / unité  : €{format_money(prof.profit_per_unit)}")
        print(f"ROI             : {format_percent(prof.roi_percentage)}%")
    elif cmd == "stats":
        owner = _owner(ctx)
        s = dashboard.summary(ctx.products.list(owner), ctx.preferences.load(owner))
        print(f"Produits : {s['totalProducts']} (en stock {s['inStock']}, vendus {s['soldCount']})")
        print(f"Valeur du stock : €{format_money(s['stockValue'])}")
        print(f"Revenu potentiel : €{format_money(s['potentialRevenue'])}")
        print(f"Profit total : €{format_money(s['totalProfit'])}")
        print(f"ROI moyen : {format_percent(s['averageRoi'])}%")
        print(f"Objectif du mois : €{format_money(s['monthProfit'])} / €{format_money(s['monthlyGoal'])}"
              f" ({format_percent(s['goalProgress'])}%)")
        print(f"Dépenses : €{format_money(s['expensesTotal'])}")
        for b in s["badges"]:
            print(f"{b['emoji']} {b['name']}")
    elif cmd == "export-csv":
        records = ctx.products.list(_owner(ctx))
        if args.ids:
            records = [r for r in records if r.id in set(args.ids)]
        out = _out_path(ctx, args.out, "export-produits.csv")
        out.write_text(transfer.export_csv(records), encoding="utf-8")
        print(f"✅ {len(records)} produit(s) exporté(s) : {out}")
    elif cmd == "export-json":
        records = ctx.products.list(_owner(ctx))
        out = _out_path(ctx, args.out, "produits-backup.json")
        out.write_text(transfer.export_json(records), encoding="utf-8")
        print(f"✅ Sauvegarde : {out}")
    elif cmd == "import":
        owner = _owner(ctx)
        path = Path(args.path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DataImportError(f"Lecture impossible de {path.name} : {e}") from e
        created = transfer.import_into(ctx.products, owner, path.name, text)
        ctx.journal({"type": "import", "owner": owner, "count": len(created), "detail": path.name})
        print(f"✅ {len(created)} produit(s) importé(s)")
    elif cmd == "prefs":
        p = ctx.preferences.load(_owner(ctx))
        print(f"Objectif mensuel : €{format_money(p.monthly_goal)}")
        print(f"Thème : {p.theme_color} {'(sombre)' if p.dark_mode else ''}")
        print(f"Dépenses : {len(p.expenses)} | Fournisseurs : {', '.join(s.name for s in p.fournisseurs) or '-'}")
    elif cmd == "goal":
        ctx.preferences.save(_owner(ctx), {"monthlyGoal": args.amount})
        print("✅ Objectif enregistré")
    elif cmd == "expense-add":
        e = prefs_service.add_expense(ctx.preferences, _owner(ctx), args.desc, args.amount, args.date)
        print(f"✅ Dépense ajoutée ID={e.id}")
    elif cmd == "supplier-add":
        s = prefs_service.add_supplier(ctx.preferences, _owner(ctx), args.name)
        if s is None:
            raise ValidationError({"name": "Nom du fournisseur requis"})
        print(f"✅ Fournisseur ajouté ID={s.id}")
    elif cmd == "clear-local":
        ctx.clear_local_data(_owner(ctx))
        print("✅ Données locales effacées")
    elif cmd == "serve":
        import uvicorn
        from revente.api.server import create_app
        uvicorn.run(create_app(ctx), host=args.host, port=args.port)
    return 0

if __name__ == "__main__":
    sys.exit(main())
