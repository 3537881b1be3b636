from cloudprobe.cli import main

main(prog_name="cloudprobe")
